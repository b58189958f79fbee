from __future__ import annotations

import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


USER_SERVICE_V1 = textwrap.dedent(
    """
    from __future__ import annotations


    class UserService:
        def __init__(self, repo):
            self.repo = repo

        def create_user(self, name):
            user = {"name": name}
            self.repo.append(user)
            return user

        def delete_user(self, name):
            self.repo[:] = [user for user in self.repo if user["name"] != name]
    """
).lstrip()

USER_SERVICE_TEST = textwrap.dedent(
    """
    from app.user_service import UserService


    class TestUserService:
        def test_create_user(self):
            service = UserService([])
            assert service.create_user("ada") == {"name": "ada"}
    """
).lstrip()


@dataclass(slots=True)
class TinyRepo:
    """A throwaway git repository with a small package and one test file."""

    root: Path

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.root,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def commit(self, message: str) -> str:
        self.git("add", "--all")
        self.git("commit", "-m", message)
        return self.git("rev-parse", "HEAD").strip()


@pytest.fixture()
def tiny_repo(tmp_path: Path) -> TinyRepo:
    """Create a git repository on ``main`` holding ``src/app/user_service.py``."""

    repo = TinyRepo(root=tmp_path / "tiny-repo")
    repo.root.mkdir()
    repo.git("init")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    repo.git("config", "user.email", "dev@example.com")
    repo.git("config", "user.name", "Test Developer")
    repo.git("config", "commit.gpgsign", "false")

    repo.write("src/app/__init__.py", "")
    repo.write("src/app/user_service.py", USER_SERVICE_V1)
    repo.write("tests/test_user_service.py", USER_SERVICE_TEST)
    repo.commit("Initial tiny repo state")
    return repo
