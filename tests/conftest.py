import pytest
import sys
import textwrap
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

FAKE_SERVER = textwrap.dedent(
    """
    import sys

    print("ready", flush=True)
    for line in sys.stdin:
        command = line.strip()
        if command == "stop":
            print("stopping", flush=True)
            break
        print(f"echo:{command}", flush=True)
    """
)

STUBBORN_SERVER = textwrap.dedent(
    """
    import signal
    import sys
    import time

    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    print("ready", flush=True)
    for line in sys.stdin:
        print(f"ignored:{line.strip()}", flush=True)
    while True:
        time.sleep(1)
    """
)


FORKING_SERVER = textwrap.dedent(
    """
    import subprocess
    import sys

    # The helper inherits stdout and outlives this process unless its group is killed.
    helper = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    print(f"helper:{helper.pid}", flush=True)
    print("ready", flush=True)
    for line in sys.stdin:
        if line.strip() == "stop":
            print("stopping", flush=True)
            break
    """
)


@pytest.fixture
def fake_server(tmp_path) -> Path:
    """A child script that echoes stdin lines and exits on `stop`."""
    script = tmp_path / "fake_server.py"
    script.write_text(FAKE_SERVER)
    return script


@pytest.fixture
def stubborn_server(tmp_path) -> Path:
    """A child script that never exits on its own."""
    script = tmp_path / "stubborn_server.py"
    script.write_text(STUBBORN_SERVER)
    return script


@pytest.fixture
def forking_server(tmp_path) -> Path:
    """A child script that leaves a helper process holding its stdout."""
    script = tmp_path / "forking_server.py"
    script.write_text(FORKING_SERVER)
    return script
