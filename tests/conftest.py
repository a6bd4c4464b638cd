"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of capsuleos modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("capsuleos"):
        del sys.modules[module_name]


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Empty data root with the default module folders."""
    from capsuleos.store.files import initialize_data_root

    root = tmp_path / "data"
    root.mkdir()
    initialize_data_root(root)
    return root.resolve()
