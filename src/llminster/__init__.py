# llminster: Package root. Drop .q / .razorq prompt files into a watched folder and get answers back; also hosts the event-sourced conversation engine.

__version__ = "0.1.0"
