"""Packaging regression tests.

Tests that verify the installed package structure and behavior.
"""

from pathlib import Path


def test_source_layout():
    """Test that the package lives under src/ with kernel and _internal subpackages."""
    here = Path(__file__).resolve().parent
    repo_root = here.parent
    src_package = repo_root / "src" / "deliverygraph"
    src_kernel = src_package / "kernel"

    assert src_package.exists(), "deliverygraph package should exist in src/"
    assert src_kernel.exists(), "deliverygraph.kernel package should exist in src/"
    assert (src_package / "_internal").exists(), "deliverygraph._internal should exist"

    # Fixtures and scripts are repo tooling, not packaged
    assert not (repo_root / "src" / "fixtures").exists()
    assert not (repo_root / "src" / "scripts").exists()


def test_import_boundary():
    """Test that the package and its kernel import."""
    import deliverygraph
    import deliverygraph.kernel.builder  # noqa: F401

    # Check version: in dev mode it's "dev", in installed mode it's "1.0.0"
    assert deliverygraph.__version__ in ("1.0.0", "dev")
