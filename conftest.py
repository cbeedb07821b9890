"""File for tests: golden-file parametrization and logging fixtures."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

DEFAULT_PATTERN = "golden/*.yaml"


def pytest_configure(config: Any) -> None:
    """Configure the tests."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with YAML golden programs matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        yield m.args[0] if m.args else DEFAULT_PATTERN


def load_golden(path: Path) -> dict[str, Any]:
    """Read one golden record, tagging it with its file name."""
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        data = {"__yaml_load_error__": "golden file is not a mapping"}
    data.setdefault("__path__", str(path))
    data.setdefault("__name__", path.name)
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Generate tests (parametrization) from YAML golden files."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns = list(_iter_marker_patterns(metafunc.definition)) or [DEFAULT_PATTERN]
    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    params: list[dict[str, Any]] = []
    ids: list[str] = []
    for p in files:
        try:
            data = load_golden(p)
        except yaml.YAMLError as e:
            data = {"__yaml_load_error__": str(e), "__path__": str(p)}
        params.append(data)
        ids.append(p.stem)

    metafunc.parametrize("golden", params, ids=ids)


@pytest.fixture
def logfile(tmp_path: Path) -> Iterator[Path]:
    """Path for a processor log; root handlers are detached afterwards."""
    import processor

    path = tmp_path / "processor.log"
    yield path
    processor.close_logging()
