from core.transitions import ChannelState, transition
from shared.platforms.state import StreamerStatus

from conftest import live, scheduled

NOW = 1_700_000_000.0
CONFIRM = 3


def _miss(state: ChannelState, now: float = NOW):
    return transition(state, None, now=now, offline_confirm_polls=CONFIRM)


def test_live_hit_resets_and_records_video():
    prior = ChannelState(offline_polls=7, last_active_at=NOW - 9999, last_known_video_id="OLD")

    result = transition(prior, live("V1", 120), now=NOW, offline_confirm_polls=CONFIRM)

    assert result.status == StreamerStatus.LIVE
    assert result.live_video_id == "V1"
    assert result.concurrent_viewers == 120
    assert result.state == ChannelState(offline_polls=0, last_active_at=NOW, last_known_video_id="V1")


def test_live_without_viewer_count_reports_zero():
    result = transition(ChannelState(), live("V1"), now=NOW, offline_confirm_polls=CONFIRM)

    assert result.concurrent_viewers == 0


def test_scheduled_hit_is_waiting_and_resets():
    prior = ChannelState(offline_polls=5, last_active_at=NOW - 5000, last_known_video_id="OLD")

    result = transition(prior, scheduled("S1"), now=NOW, offline_confirm_polls=CONFIRM)

    assert result.status == StreamerStatus.WAITING
    assert result.live_video_id is None
    assert result.state.offline_polls == 0
    assert result.state.last_active_at == NOW
    assert result.state.last_known_video_id == "OLD"


def test_never_active_channel_stays_offline_without_counting():
    result = _miss(ChannelState())

    assert result.status == StreamerStatus.OFFLINE
    assert result.state == ChannelState()


def test_debounce_sequence_after_going_offline():
    state = transition(ChannelState(), live("V1"), now=NOW, offline_confirm_polls=CONFIRM).state
    statuses = []

    for i in range(1, 6):
        result = _miss(state, now=NOW + 60 * i)
        statuses.append(result.status)
        assert result.state.offline_polls == i
        state = result.state

    assert statuses == [
        StreamerStatus.WAITING,
        StreamerStatus.WAITING,
        StreamerStatus.OFFLINE,
        StreamerStatus.OFFLINE,
        StreamerStatus.OFFLINE,
    ]


def test_miss_below_threshold_waits_and_refreshes_activity():
    prior = ChannelState(offline_polls=1, last_active_at=NOW - 60, last_known_video_id="V1")

    result = _miss(prior)

    assert result.status == StreamerStatus.WAITING
    assert result.state.offline_polls == 2
    assert result.state.last_active_at == NOW


def test_miss_reaching_threshold_reports_offline():
    prior = ChannelState(offline_polls=2, last_active_at=NOW - 60, last_known_video_id="V1")

    result = _miss(prior)

    assert result.status == StreamerStatus.OFFLINE
    assert result.state.offline_polls == 3
    assert result.state.last_active_at == NOW - 60


def test_waiting_lasts_threshold_minus_one_misses():
    for confirm in (1, 2, 3, 5):
        state = ChannelState(last_active_at=NOW, last_known_video_id="V1")
        statuses = []
        for i in range(1, confirm + 2):
            result = transition(state, None, now=NOW + i, offline_confirm_polls=confirm)
            statuses.append(result.status)
            state = result.state

        assert statuses.count(StreamerStatus.WAITING) == confirm - 1
        assert statuses[confirm - 1:] == [StreamerStatus.OFFLINE, StreamerStatus.OFFLINE]


def test_confirmed_offline_leaves_last_active_untouched():
    prior = ChannelState(offline_polls=3, last_active_at=NOW - 120, last_known_video_id="V1")

    result = _miss(prior)

    assert result.status == StreamerStatus.OFFLINE
    assert result.state.offline_polls == 4
    assert result.state.last_active_at == NOW - 120


def test_any_hit_resets_count_regardless_of_prior():
    for polls in (0, 1, 3, 50):
        prior = ChannelState(offline_polls=polls, last_active_at=NOW - 10, last_known_video_id="V0")
        assert transition(prior, live("V1"), now=NOW, offline_confirm_polls=CONFIRM).state.offline_polls == 0
        assert transition(prior, scheduled("S1"), now=NOW, offline_confirm_polls=CONFIRM).state.offline_polls == 0


def test_channel_state_round_trips_storage_format():
    state = ChannelState(offline_polls=2, last_active_at=NOW, last_known_video_id="V1")

    assert ChannelState.from_dict(state.to_dict()) == state
    assert ChannelState.from_dict({"offlinePolls": -4, "lastActiveAt": "bad"}) == ChannelState()
    assert ChannelState.from_dict(None) == ChannelState()
