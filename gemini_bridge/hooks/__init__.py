"""Claude Code hook entry points: the universal router and the bridge hook."""
