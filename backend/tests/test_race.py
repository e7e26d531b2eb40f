import pytest

from capyrace.game import race as race_module
from capyrace.game.errors import InvalidState, RoomNotFound, Unauthorized

TEXT = 'The quick brown fox jumps over the lazy dog.'


def test_start_game_enters_countdown(game, make_room, broadcaster):
    room = make_room(2)
    broadcaster.clear()

    game.race.start_game('sid-1', room.id, text=TEXT)

    assert room.state == 'countdown'
    assert room.race_text == TEXT
    assert broadcaster.payloads('sid-2', 'gameStarting') == [{'text': TEXT, 'raceDuration': 60}]
    assert broadcaster.payloads('sid-2', 'countdown') == [3]


def test_countdown_reaches_playing_after_three_seconds(game, make_room, broadcaster, scheduler):
    room = make_room(2)
    game.race.start_game('sid-1', room.id, text=TEXT)

    scheduler.advance(2)
    assert room.state == 'countdown'
    assert room.start_time is None

    scheduler.advance(1)
    assert room.state == 'playing'
    assert room.start_time == scheduler.now()
    assert broadcaster.payloads('sid-2', 'countdown') == [3, 2, 1, 0]
    started = broadcaster.payloads('sid-2', 'gameStarted')
    assert len(started) == 1
    assert started[0]['duration'] == 60


def test_non_admin_cannot_start(game, make_room, scheduler):
    room = make_room(2)

    with pytest.raises(Unauthorized):
        game.race.start_game('sid-2', room.id, text=TEXT)
    assert room.state == 'waiting'
    assert scheduler.pending() == []


def test_start_unknown_room(game):
    with pytest.raises(RoomNotFound):
        game.race.start_game('sid-1', 'missing', text=TEXT)


@pytest.mark.parametrize('advance', [0, 3, None])
def test_start_twice_is_rejected(game, make_room, scheduler, advance):
    room = make_room(2)
    game.race.start_game('sid-1', room.id, text=TEXT)
    if advance:
        scheduler.advance(advance)
    if advance is None:
        scheduler.advance(3)
        for sid in ('sid-1', 'sid-2'):
            game.race.update_progress(sid, room.id, 100)
        assert room.state == 'finished'
    state = room.state

    with pytest.raises(InvalidState):
        game.race.start_game('sid-1', room.id, text=TEXT)
    assert room.state == state
    assert len(scheduler.pending('_countdown_tick')) <= 1


def test_start_without_text_uses_fallback_passage(game, make_room):
    room = make_room()
    game.race.start_game('sid-1', room.id, category='facts')

    assert room.race_text


def test_progress_ignored_outside_playing(game, make_room, broadcaster):
    room = make_room(2)
    broadcaster.clear()

    assert game.race.update_progress('sid-2', room.id, 40) is False
    assert room.players['sid-2'].progress == 0
    assert broadcaster.sent == []


def test_progress_ignored_after_finish(game, playing_room, broadcaster):
    for sid in ('sid-1', 'sid-2'):
        game.race.update_progress(sid, playing_room.id, 100)
    assert playing_room.state == 'finished'
    broadcaster.clear()

    assert game.race.update_progress('sid-2', playing_room.id, 50) is False
    assert playing_room.players['sid-2'].progress == 100
    assert broadcaster.sent == []


def test_progress_is_broadcast(game, playing_room, broadcaster):
    assert game.race.update_progress('sid-2', playing_room.id, 42.5) is True

    assert playing_room.players['sid-2'].progress == 42.5
    assert broadcaster.payloads('sid-1', 'progressUpdate') == [{'playerId': 'sid-2', 'progress': 42.5}]


def test_progress_from_stranger_is_ignored(game, playing_room, broadcaster):
    assert game.race.update_progress('intruder', playing_room.id, 10) is False
    assert broadcaster.sent == []


def test_finishing_player_is_announced_once(game, playing_room, broadcaster, scheduler):
    scheduler.advance(12.5)
    game.race.update_progress('sid-2', playing_room.id, 100)
    game.race.update_progress('sid-2', playing_room.id, 100)

    finished = broadcaster.payloads('sid-1', 'playerFinished')
    assert len(finished) == 1
    assert finished[0]['playerId'] == 'sid-2'
    assert finished[0]['nickname'] == 'player2'
    assert finished[0]['time'] == pytest.approx(12.5)
    # One finisher does not end the race.
    assert playing_room.state == 'playing'


def test_race_finishes_when_everyone_is_done(game, playing_room, broadcaster, scheduler):
    game.race.update_progress('sid-2', playing_room.id, 100)
    scheduler.advance(2)
    game.race.update_progress('sid-1', playing_room.id, 100)

    assert playing_room.state == 'finished'
    finished = broadcaster.payloads('sid-1', 'raceFinished')
    assert len(finished) == 1
    assert finished[0]['reason'] == 'all_finished'
    assert [p['id'] for p in finished[0]['results']] == ['sid-2', 'sid-1']
    assert scheduler.pending('_race_tick') == []


def test_race_times_out(game, playing_room, broadcaster, scheduler):
    game.race.update_progress('sid-1', playing_room.id, 30)
    game.race.update_progress('sid-2', playing_room.id, 70)

    scheduler.advance(59)
    assert playing_room.state == 'playing'
    assert len(broadcaster.payloads('sid-1', 'raceTimer')) == 59

    scheduler.advance(1)
    assert playing_room.state == 'finished'
    finished = broadcaster.payloads('sid-1', 'raceFinished')
    assert finished[0]['reason'] == 'time_up'
    assert [p['id'] for p in finished[0]['results']] == ['sid-2', 'sid-1']
    assert broadcaster.payloads('sid-1', 'raceTimer')[-1]['remaining'] == 0


def test_leaving_player_can_complete_race(game, make_room, scheduler, broadcaster):
    room = make_room(3)
    game.race.start_game('sid-1', room.id, text=TEXT)
    scheduler.advance(3)
    game.race.update_progress('sid-1', room.id, 100)
    game.race.update_progress('sid-2', room.id, 100)

    game.sessions.leave('sid-3', explicit=True)

    assert room.state == 'finished'
    assert broadcaster.payloads('sid-1', 'raceFinished')[0]['reason'] == 'all_finished'


def test_stats_update_is_last_write_wins(game, playing_room, broadcaster):
    game.race.update_stats('sid-2', wpm=40, errors=3, progress=20)
    game.race.update_stats('sid-2', wpm=55, errors=1, progress=35)

    player = playing_room.players['sid-2']
    assert (player.wpm, player.errors, player.progress) == (55, 1, 35)
    assert broadcaster.payloads('sid-1', 'playerStatsUpdated')[-1] == {
        'playerId': 'sid-2', 'wpm': 55, 'errors': 1, 'progress': 35,
    }


def test_stats_ignored_while_waiting(game, make_room):
    room = make_room(2)
    assert game.race.update_stats('sid-2', wpm=40, errors=3, progress=20) is False
    assert room.players['sid-2'].wpm == 0


def test_player_finished_event_with_partial_progress(game, playing_room, broadcaster):
    game.race.player_finished('sid-2', wpm=61, errors=2, progress=80)

    player = playing_room.players['sid-2']
    assert player.finished is False
    assert player.wpm == 61
    assert broadcaster.payloads('sid-1', 'playerFinished') == []


def test_player_finished_event_with_full_progress(game, playing_room, broadcaster):
    game.race.player_finished('sid-2', wpm=61, errors=2, progress=100)

    assert playing_room.players['sid-2'].finished is True
    assert len(broadcaster.payloads('sid-1', 'playerFinished')) == 1


def test_return_to_lobby_resets_race(game, playing_room, broadcaster):
    for sid in ('sid-1', 'sid-2'):
        game.race.update_stats(sid, wpm=50, errors=0, progress=100)
    assert playing_room.state == 'finished'

    game.race.return_to_lobby('sid-1', playing_room.id)

    assert playing_room.state == 'waiting'
    assert playing_room.race_text == ''
    assert playing_room.start_time is None
    assert all(p.progress == 0 and not p.finished for p in playing_room.players.values())
    assert broadcaster.payloads('sid-2', 'gameStateChanged')[-1] == {
        'gameState': 'waiting', 'reason': 'return_to_lobby',
    }
    # A new round can start.
    game.race.start_game('sid-1', playing_room.id, text=TEXT)
    assert playing_room.state == 'countdown'


def test_return_to_lobby_rules(game, playing_room):
    with pytest.raises(InvalidState):
        game.race.return_to_lobby('sid-1', playing_room.id)
    with pytest.raises(Unauthorized):
        game.race.return_to_lobby('sid-2', playing_room.id)


def test_deleting_room_mid_countdown_stops_timers(game, make_room, scheduler, broadcaster):
    room = make_room(2)
    game.race.start_game('sid-1', room.id, text=TEXT)
    game.sessions.leave('sid-2', explicit=True)
    game.sessions.leave('sid-1', explicit=True)

    assert game.registry.get(room.id) is None
    assert scheduler.pending() == []
    broadcaster.clear()
    scheduler.advance(120)
    assert broadcaster.sent == []


class _RecordingLogger:
    def __init__(self):
        self.records = []

    def info(self, event, **kw):
        self.records.append((event, kw))

    def debug(self, event, **kw):
        self.records.append((event, kw))


def test_player_finished_logs_client_time_next_to_server_time(game, playing_room, scheduler, monkeypatch):
    recorder = _RecordingLogger()
    monkeypatch.setattr(race_module, 'logger', recorder)
    scheduler.advance(12)

    game.race.player_finished('sid-2', wpm=61, errors=2, progress=100, client_time=11.5)

    reported = [kw for event, kw in recorder.records if event == 'client_finish_reported']
    assert reported == [{
        'room_id': playing_room.id,
        'player_id': 'sid-2',
        'client_time': 11.5,
        'server_time': playing_room.players['sid-2'].finish_time,
    }]
    assert playing_room.players['sid-2'].finish_time == pytest.approx(12)
