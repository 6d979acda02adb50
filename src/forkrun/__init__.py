"""forkrun: run an unassembled web application in a forked Python process."""

__version__ = "0.1.0"
