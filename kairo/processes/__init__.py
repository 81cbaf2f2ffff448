"""Process management — agent subprocess supervision.

kairo treats agents as OS processes. This package provides:
- AgentManager: spawn, list, feed input to and stop agent processes
- pump_lines: stream a process's stdout/stderr onto the EventBus
- watch_exit: record how each process ended
"""
