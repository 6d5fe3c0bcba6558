"""complaint-desk: complaint lifecycle tracking with a live-synchronized local view."""

__version__ = "0.1.0"
