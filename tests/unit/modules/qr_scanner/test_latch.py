"""Unit tests for OutcomeLatch."""

from orderdesk.modules.QRScanner.runtime.latch import OutcomeLatch


def test_first_claim_wins():
    latch = OutcomeLatch()

    assert latch.claim("CAM-1", source="camera")
    assert not latch.claim("MAN-1", source="manual")

    assert latch.claimed
    assert latch.value == "CAM-1"
    assert latch.source == "camera"


def test_unclaimed_latch_is_empty():
    latch = OutcomeLatch()

    assert not latch.claimed
    assert latch.value is None
    assert latch.source is None
    assert repr(latch) == "OutcomeLatch(unclaimed)"


def test_repr_shows_winner():
    latch = OutcomeLatch()
    latch.claim("A", source="manual")

    assert repr(latch) == "OutcomeLatch(value='A', source='manual')"
