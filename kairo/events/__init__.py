"""Event fan-out between agent processes and their observers."""
