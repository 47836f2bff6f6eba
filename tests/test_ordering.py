"""Tests for queue ordering."""

import pytest

from src.coordination.errors import DirectoryUnavailable, SelfMarkerMissing
from src.coordination.markers import Contender, create_marker
from src.coordination.ordering import QueuePosition, list_queue, rank


def _register(directory, count):
    contenders = []
    for _ in range(count):
        handle, contender = create_marker(directory)
        handle.close()
        contenders.append(contender)
    return contenders


class TestRank:
    """Test rank computation."""
    
    def test_single_contender_is_first(self, tmp_path):
        (contender,) = _register(tmp_path, 1)
        position = rank(contender)
        
        assert position.index == 0
        assert position.is_first
        assert position.predecessor is None
    
    def test_exactly_one_first(self, tmp_path):
        """Only the lexicographically smallest marker has rank 0."""
        contenders = _register(tmp_path, 8)
        positions = [rank(c) for c in contenders]
        
        firsts = [c for c, p in zip(contenders, positions) if p.is_first]
        assert len(firsts) == 1
        assert firsts[0].marker_name == min(p.name for p in tmp_path.iterdir())
        assert [p.index for p in positions] == list(range(8))
    
    def test_predecessor_is_immediately_ahead(self, tmp_path):
        first, second, third = _register(tmp_path, 3)
        
        assert rank(second).predecessor == first.marker
        assert rank(third).predecessor == second.marker
    
    def test_rank_follows_live_listing(self, tmp_path):
        """Removing a marker ahead moves everyone behind it up."""
        first, second, third = _register(tmp_path, 3)
        first.marker.unlink()
        
        assert rank(second).is_first
        assert rank(third).index == 1
    
    def test_foreign_entries_count(self, tmp_path):
        """Every entry in the directory takes a place in line."""
        (contender,) = _register(tmp_path, 1)
        (tmp_path / "0").write_text("")
        
        position = rank(contender)
        assert position.index == 1
        assert position.predecessor == tmp_path / "0"
    
    def test_plain_string_order(self, tmp_path):
        """Names compare as strings, not numbers."""
        for name in ("10", "9", "a"):
            (tmp_path / name).write_text("")
        contender = Contender(directory=tmp_path, marker=tmp_path / "9")
        
        position = rank(contender)
        assert position.names == ["10", "9", "a"]
        assert position.index == 1
    
    def test_self_marker_missing(self, tmp_path):
        (contender,) = _register(tmp_path, 1)
        contender.marker.unlink()
        
        with pytest.raises(SelfMarkerMissing) as exc_info:
            rank(contender)
        assert exc_info.value.path == contender.marker
    
    def test_directory_missing(self, tmp_path):
        contender = Contender(directory=tmp_path / "gone", marker=tmp_path / "gone" / "m")
        with pytest.raises(DirectoryUnavailable):
            rank(contender)


class TestListQueue:
    """Test queue snapshots."""
    
    def test_sorted_snapshot(self, tmp_path):
        contenders = _register(tmp_path, 4)
        assert list_queue(tmp_path) == [c.marker_name for c in contenders]
    
    def test_empty_directory(self, tmp_path):
        assert list_queue(tmp_path) == []


class TestQueuePosition:
    """Test QueuePosition helpers."""
    
    def test_predecessor_path(self, tmp_path):
        position = QueuePosition(directory=tmp_path, index=2, names=["a", "b", "c"])
        assert not position.is_first
        assert position.predecessor == tmp_path / "b"
