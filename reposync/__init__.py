"""
reposync - keep local git working copies synchronized with their upstreams.

Working copies are discovered in local directories, on remote hosts over SSH,
or from a GitHub account, then cloned or fast-forwarded without ever touching
uncommitted work.
"""

__version__ = "1.0.0"
__author__ = "reposync Team"
__description__ = "Non-destructive synchronization of many git working copies"

from .cli import main

__all__ = ["main"]
