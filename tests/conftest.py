"""Shared pytest configuration and fixtures for the bandwidth checker tests."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dp_bandwidth.state import (StreamSlot, TimingSpec, add_slot, choose_mode,  # noqa: E402
                                new_session, new_slot, replace_slot, set_profile)


@pytest.fixture
def default_slot() -> StreamSlot:
    """Fresh slot: CVT-RB2 3840×2160 @ 144, 8 bpc RGB, DSC 3:1."""
    return new_slot(0)


@pytest.fixture
def empty_slot() -> StreamSlot:
    """Slot with nothing filled in yet."""
    return StreamSlot(id='empty', label='Empty', timing=TimingSpec(profile='cvt_rb'))


@pytest.fixture
def hbr3_session():
    """HBR3 x4 session with two streams: 4K144 RB2 (DSC) and 1080p60 CVT-RB (DSC)."""
    state = add_slot(new_session('dp13_hbr3'))
    second = state.slots[1]
    second = choose_mode(set_profile(second, 'cvt_rb'), 0)
    return replace_slot(state, second)
