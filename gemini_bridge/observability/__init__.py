"""JSONL logs for delegation events and hook audits."""
