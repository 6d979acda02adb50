import io
import pytest
import sys
import zipfile
from pathlib import Path
from rich.console import Console

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from forkrun.cli.formatter import OutputFormatter


@pytest.fixture
def root_dir(tmp_path):
    """
    Returns a temporary directory to act as the project root for tests.
    """
    return tmp_path


@pytest.fixture
def formatter():
    """
    OutputFormatter writing to an in-memory console at DEBUG level.
    Read what was logged with `formatter.console.file.getvalue()`.
    """
    console = Console(file=io.StringIO(), force_terminal=False, color_system=None, highlight=False, width=200)
    return OutputFormatter(console=console, log_level="DEBUG")


def make_zip(path: Path, entries: dict) -> Path:
    """Write a zip archive with the given name -> text entries."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return path


@pytest.fixture
def zip_factory():
    return make_zip
