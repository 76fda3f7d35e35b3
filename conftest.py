"""Root pytest configuration: make ``fluid_sph`` importable from a source checkout."""
import sys
from pathlib import Path
from typing import Any, Optional

_ROOT = Path(__file__).parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))


def pytest_ignore_collect(collection_path: Path, config: Any) -> Optional[bool]:
    """Skip paths that cannot be stat'ed (broken symlinks in the checkout)."""
    try:
        _ = collection_path.is_dir()
    except OSError:
        return True
    return None
