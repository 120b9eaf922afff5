import pytest

from stageflow.core.errors import DirectoryUnavailable
from stageflow.core.models import ArtifactMatcher
from stageflow.core.staging import StagingArea


def _touch(path, data=b"x"):
    path.write_bytes(data)
    return path


def test_check_empty_ignores_hidden_and_allowed(tmp_path):
    st = StagingArea()
    assert st.check_empty(tmp_path) == (True, [])
    _touch(tmp_path / ".DS_Store")
    assert st.check_empty(tmp_path) == (True, [])
    _touch(tmp_path / "ZereneBatch.xml")
    assert st.check_empty(tmp_path, allowlist=["ZereneBatch.xml"]) == (True, [])
    clear, unexpected = st.check_empty(tmp_path)
    assert not clear and unexpected == ["ZereneBatch.xml"]


def test_check_empty_reports_leftovers_and_missing(tmp_path):
    st = StagingArea()
    _touch(tmp_path / "old-a.tif")
    clear, unexpected = st.check_empty(tmp_path, allowlist=["ZereneBatch.xml"], required=["ZereneBatch.xml"])
    assert not clear
    assert unexpected == ["old-a.tif", "missing:ZereneBatch.xml"]


def test_missing_directory_is_unavailable(tmp_path):
    st = StagingArea()
    with pytest.raises(DirectoryUnavailable):
        st.check_empty(tmp_path / "nope")
    with pytest.raises(DirectoryUnavailable):
        st.list_matching(tmp_path / "nope", [ArtifactMatcher.exact("a")])


def test_list_matching_first_match_wins(tmp_path):
    st = StagingArea()
    _touch(tmp_path / "x-a.tif")
    matchers = [ArtifactMatcher.pattern("*.tif"), ArtifactMatcher.suffix("-a.tif")]
    found = st.list_matching(tmp_path, matchers)
    # one file satisfies at most one matcher
    assert found == {0: tmp_path / "x-a.tif", 1: None}


def test_list_matching_skips_hidden_and_unready(tmp_path):
    st = StagingArea()
    _touch(tmp_path / ".x-a.tif")
    _touch(tmp_path / "y-a.tif", b"")
    found = st.list_matching(tmp_path, [ArtifactMatcher.suffix("-a.tif")])
    assert found == {0: None}
    _touch(tmp_path / "y-a.tif", b"done")
    assert st.list_matching(tmp_path, [ArtifactMatcher.suffix("-a.tif")]) == {0: tmp_path / "y-a.tif"}


def test_list_matching_carries_satisfied(tmp_path):
    st = StagingArea()
    a = _touch(tmp_path / "one.tif")
    _touch(tmp_path / "two.tif")
    matchers = [ArtifactMatcher.pattern("*.tif"), ArtifactMatcher.pattern("*.tif")]
    found = st.list_matching(tmp_path, matchers, satisfied={0: a})
    assert found == {0: a, 1: tmp_path / "two.tif"}


def test_sentinel_roundtrip(tmp_path):
    st = StagingArea()
    assert not st.has_sentinel(tmp_path, "stopjob")
    assert not st.has_sentinel(tmp_path, None)
    st.write_sentinel(tmp_path, "stopjob")
    assert st.has_sentinel(tmp_path, "stopjob")


def test_stage_in_and_remove(tmp_path):
    st = StagingArea()
    src_dir = tmp_path / "src"
    src_dir.mkdir()
    stage = tmp_path / "stage"
    stage.mkdir()
    a = _touch(src_dir / "a.tif")
    b = _touch(src_dir / "b.tif")
    copies = st.stage_in(stage, [a, b])
    assert [p.name for p in copies] == ["a.tif", "b.tif"]
    assert a.exists() and (stage / "a.tif").exists()
    st.remove(stage, ["a.tif", "b.tif", "never-there.pto"])
    assert list(stage.iterdir()) == []


def test_stage_in_failure_rolls_back(tmp_path):
    st = StagingArea()
    stage = tmp_path / "stage"
    stage.mkdir()
    a = _touch(tmp_path / "a.tif")
    with pytest.raises(DirectoryUnavailable):
        st.stage_in(stage, [a, tmp_path / "missing.tif"])
    assert list(stage.iterdir()) == []


def test_list_matching_never_offers_excluded_names(tmp_path):
    (tmp_path / "in.tif").write_bytes(b"raw")
    (tmp_path / "project0000.tif").write_bytes(b"remapped")
    st = StagingArea()
    matchers = [ArtifactMatcher.pattern("*.tif")]
    assert st.list_matching(tmp_path, matchers, exclude=["in.tif", "project0000.tif"]) == {0: None}
    (tmp_path / "pano.tif").write_bytes(b"pano")
    assert st.list_matching(tmp_path, matchers, exclude=["in.tif", "project0000.tif"]) == {0: tmp_path / "pano.tif"}
