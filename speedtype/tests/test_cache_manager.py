import json

from speedtype.core.redis_client import leaderboard_key
from speedtype.tests.factories import seed_result
from speedtype.workers import cache_manager


def _last_json(capsys):
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_refresh_single_duration(fake_redis, capsys):
    seed_result("a", wpm=80, duration=30)
    seed_result("b", wpm=70, duration=60)

    assert cache_manager.main(["refresh", "--duration", "30"]) == 0
    assert _last_json(capsys) == {"30": 1}
    assert fake_redis.zcard(leaderboard_key(30)) == 1
    assert fake_redis.zcard(leaderboard_key(60)) == 0


def test_refresh_all_then_status_then_clear(fake_redis, capsys):
    seed_result("a", wpm=80, duration=30)
    seed_result("b", wpm=70, duration=60)
    seed_result("c", wpm=60, duration=60)

    assert cache_manager.main(["refresh"]) == 0
    assert _last_json(capsys) == {"15": 0, "30": 1, "60": 2, "120": 0}

    assert cache_manager.main(["status"]) == 0
    assert _last_json(capsys) == {"15": 0, "30": 1, "60": 2, "120": 0}

    assert cache_manager.main(["clear"]) == 0
    assert _last_json(capsys) == {"cleared": True}
    assert fake_redis.zcard(leaderboard_key(60)) == 0


def test_requires_redis(no_redis, capsys):
    assert cache_manager.main(["status"]) == 1
    assert "REDIS_URL" in capsys.readouterr().out
