"""modules/tool_usage — Distance, time and travel-time lookup tools."""
