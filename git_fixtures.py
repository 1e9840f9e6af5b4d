"""
Throwaway git repositories for the test suite.

Builds an ``origin.git`` bare repository with one commit, a working clone
to be synced and a second clone used to publish new upstream commits.
"""

import subprocess
from pathlib import Path

IDENTITY = ["-c", "user.name=Sync Test", "-c", "user.email=sync@example.com", "-c", "commit.gpgsign=false"]


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *IDENTITY, *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    (repo / name).write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)


class RepoFixture:
    """origin.git plus two clones of it under ``root``."""

    def __init__(self, root: Path, name: str = "project"):
        self.root = root
        self.origin = root / "origin.git"
        self.work = root / "checkouts" / name
        self.publisher = root / "publisher"

        seed = root / "seed"
        seed.mkdir(parents=True)
        git(seed, "init", "-q")
        git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
        commit_file(seed, "README.md", "hello\n", "initial commit")
        git(root, "clone", "-q", "--bare", str(seed), str(self.origin))

        self.work.parent.mkdir(parents=True)
        git(root, "clone", "-q", str(self.origin), str(self.work))
        git(root, "clone", "-q", str(self.origin), str(self.publisher))

    def publish(self, count: int = 1) -> None:
        """Push ``count`` new commits to origin from the publisher clone."""
        for index in range(count):
            commit_file(self.publisher, f"upstream-{index}.txt", f"{index}\n", f"upstream change {index}")
        git(self.publisher, "push", "-q", "origin", "main")

    def head(self, repo: Path = None) -> str:
        return git(repo or self.work, "rev-parse", "HEAD")

    def origin_head(self) -> str:
        return git(self.origin, "rev-parse", "main")
