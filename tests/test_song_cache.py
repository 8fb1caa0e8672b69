import asyncio
import logging
from pathlib import Path

import pytest

from gplaymusic_provider.exceptions import FileCleanupError, SongLookupError
from gplaymusic_provider.storage.song_cache import (
    RemovalCause,
    SongCache,
    SongFileRemover,
)

from tests.support import make_song

TTL_SECONDS = 5 * 60


class RecordingListener:
    def __init__(self):
        self.removed = []

    async def __call__(self, song, cause):
        self.removed.append((song.id, cause))


def make_loader(calls):
    async def loader(song_id):
        calls.append(song_id)
        return make_song(song_id)

    return loader


def write_song_file(song_dir: Path, song_id: str) -> Path:
    path = song_dir / f"{song_id}.mp3"
    path.write_bytes(b"ID3")
    return path


class TestSingleFlight:
    def test_concurrent_gets_share_one_load(self):
        calls = []

        async def scenario():
            gate = asyncio.Event()

            async def loader(song_id):
                calls.append(song_id)
                await gate.wait()
                return make_song(song_id)

            cache = SongCache(loader, ttl_minutes=5)
            tasks = [asyncio.create_task(cache.get("T1")) for _ in range(5)]
            await asyncio.sleep(0)
            gate.set()
            return await asyncio.gather(*tasks)

        songs = asyncio.run(scenario())

        assert calls == ["T1"]
        assert len(songs) == 5
        assert all(song is songs[0] for song in songs)

    def test_concurrent_gets_share_one_failure(self):
        calls = []

        async def scenario():
            gate = asyncio.Event()

            async def loader(song_id):
                calls.append(song_id)
                await gate.wait()
                raise RuntimeError("catalog down")

            cache = SongCache(loader, ttl_minutes=5)
            tasks = [asyncio.create_task(cache.get("T1")) for _ in range(3)]
            await asyncio.sleep(0)
            gate.set()
            return await asyncio.gather(*tasks, return_exceptions=True)

        errors = asyncio.run(scenario())

        assert calls == ["T1"]
        assert all(isinstance(e, SongLookupError) for e in errors)
        assert all(isinstance(e, LookupError) for e in errors)
        assert len({id(e) for e in errors}) == 1
        assert isinstance(errors[0].__cause__, RuntimeError)

    def test_different_keys_load_independently(self):
        calls = []

        async def scenario():
            cache = SongCache(make_loader(calls), ttl_minutes=5)
            return await asyncio.gather(cache.get("T1"), cache.get("T2"))

        first, second = asyncio.run(scenario())

        assert sorted(calls) == ["T1", "T2"]
        assert (first.id, second.id) == ("T1", "T2")

    def test_failures_are_not_cached(self):
        calls = []

        async def scenario():
            async def loader(song_id):
                calls.append(song_id)
                if len(calls) == 1:
                    raise RuntimeError("temporary")
                return make_song(song_id)

            cache = SongCache(loader, ttl_minutes=5)
            with pytest.raises(SongLookupError):
                await cache.get("T1")
            return await cache.get("T1")

        song = asyncio.run(scenario())

        assert calls == ["T1", "T1"]
        assert song.id == "T1"

    def test_hit_does_not_call_loader(self):
        calls = []

        async def scenario():
            cache = SongCache(make_loader(calls), ttl_minutes=5)
            first = await cache.get("T1")
            second = await cache.get("T1")
            return first, second

        first, second = asyncio.run(scenario())

        assert calls == ["T1"]
        assert first is second

    def test_put_during_load_wins(self):
        async def scenario():
            gate = asyncio.Event()

            async def loader(song_id):
                await gate.wait()
                return make_song(song_id, title="loaded")

            cache = SongCache(loader, ttl_minutes=5)
            pending = asyncio.create_task(cache.get("T1"))
            await asyncio.sleep(0)
            cache.put("T1", make_song("T1", title="searched"))
            gate.set()
            return await pending

        assert asyncio.run(scenario()).title == "searched"


class TestExpiry:
    def test_entry_expires_after_last_access(self, clock):
        calls = []
        listener = RecordingListener()

        async def scenario():
            cache = SongCache(
                make_loader(calls), ttl_minutes=5, removal_listener=listener, clock=clock
            )
            cache.put("T1", make_song("T1"))

            clock.advance(TTL_SECONDS - 1)
            await cache.get("T1")
            # Sliding expiry: the access above restarted the timer
            clock.advance(TTL_SECONDS - 1)
            await cache.get("T1")
            assert calls == []

            clock.advance(TTL_SECONDS)
            assert "T1" not in cache
            await cache.get("T1")
            await cache.wait_for_removals()

        asyncio.run(scenario())

        assert calls == ["T1"]
        assert listener.removed == [("T1", RemovalCause.EXPIRED)]

    def test_contains_does_not_refresh_access(self, clock):
        async def scenario():
            cache = SongCache(make_loader([]), ttl_minutes=5, clock=clock)
            cache.put("T1", make_song("T1"))
            clock.advance(TTL_SECONDS - 1)
            assert "T1" in cache
            clock.advance(1)
            return "T1" in cache

        assert asyncio.run(scenario()) is False

    def test_clean_up_deletes_expired_files(self, clock, tmp_path):
        song_file = write_song_file(tmp_path, "T1")
        fresh_file = write_song_file(tmp_path, "T2")

        async def scenario():
            cache = SongCache(
                make_loader([]),
                ttl_minutes=5,
                removal_listener=SongFileRemover(tmp_path),
                clock=clock,
            )
            cache.put("T1", make_song("T1"))
            clock.advance(TTL_SECONDS / 2)
            cache.put("T2", make_song("T2"))
            clock.advance(TTL_SECONDS / 2)

            removed = cache.clean_up()
            await cache.wait_for_removals()
            return removed, len(cache)

        removed, remaining = asyncio.run(scenario())

        assert removed == 1
        assert remaining == 1
        assert not song_file.exists()
        assert fresh_file.exists()

    def test_background_cleanup_removes_expired_songs(self, clock, tmp_path):
        song_file = write_song_file(tmp_path, "T1")

        async def scenario():
            cache = SongCache(
                make_loader([]),
                ttl_minutes=5,
                removal_listener=SongFileRemover(tmp_path),
                clock=clock,
            )
            cache.put("T1", make_song("T1"))
            await cache.start_background_cleanup(interval=0.01)
            clock.advance(TTL_SECONDS)
            for _ in range(100):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
            await cache.wait_for_removals()
            await cache.stop_background_cleanup()
            return len(cache)

        assert asyncio.run(scenario()) == 0
        assert not song_file.exists()


    def test_background_cleanup_survives_errors(self, clock, caplog):
        async def scenario():
            cache = SongCache(make_loader([]), ttl_minutes=5, clock=clock)
            cache.put("T1", make_song("T1"))

            clean_up = cache.clean_up
            failures = []

            def flaky_clean_up():
                if not failures:
                    failures.append(True)
                    raise RuntimeError("sweep failed")
                return clean_up()

            cache.clean_up = flaky_clean_up
            clock.advance(TTL_SECONDS)
            await cache.start_background_cleanup(interval=0.01)
            for _ in range(100):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
            await cache.stop_background_cleanup()
            return len(cache)

        with caplog.at_level(logging.WARNING):
            assert asyncio.run(scenario()) == 0

        assert "sweep failed" in caplog.text


class TestCapacity:
    def test_least_recently_used_entry_is_evicted(self, clock):
        listener = RecordingListener()

        async def scenario():
            cache = SongCache(
                make_loader([]),
                ttl_minutes=5,
                removal_listener=listener,
                maximum_size=3,
                clock=clock,
            )
            for song_id in ("a", "b", "c"):
                cache.put(song_id, make_song(song_id))
                clock.advance(1)
            await cache.get("a")
            cache.put("d", make_song("d"))
            await cache.wait_for_removals()
            return cache

        cache = asyncio.run(scenario())

        assert listener.removed == [("b", RemovalCause.SIZE)]
        assert len(cache) == 3
        assert all(song_id in cache for song_id in ("a", "c", "d"))

    def test_equal_access_times_evict_in_insertion_order(self, clock):
        listener = RecordingListener()

        async def scenario():
            cache = SongCache(
                make_loader([]),
                ttl_minutes=5,
                removal_listener=listener,
                maximum_size=2,
                clock=clock,
            )
            for song_id in ("a", "b", "c", "d"):
                cache.put(song_id, make_song(song_id))
            await cache.wait_for_removals()

        asyncio.run(scenario())

        assert listener.removed == [("a", RemovalCause.SIZE), ("b", RemovalCause.SIZE)]

    def test_loaded_entries_count_towards_maximum_size(self):
        listener = RecordingListener()

        async def scenario():
            cache = SongCache(
                make_loader([]), ttl_minutes=5, removal_listener=listener, maximum_size=1
            )
            await cache.get("T1")
            await cache.get("T2")
            await cache.wait_for_removals()
            return len(cache)

        assert asyncio.run(scenario()) == 1
        assert listener.removed == [("T1", RemovalCause.SIZE)]


class TestRemoval:
    def test_replacing_an_entry_is_not_a_removal(self):
        listener = RecordingListener()

        async def scenario():
            cache = SongCache(make_loader([]), ttl_minutes=5, removal_listener=listener)
            cache.put("T1", make_song("T1", title="first"))
            cache.put("T1", make_song("T1", title="second"))
            await cache.wait_for_removals()
            return await cache.get("T1")

        assert asyncio.run(scenario()).title == "second"
        assert listener.removed == []

    def test_invalidate_all_deletes_every_song_file(self, tmp_path):
        for song_id in ("T1", "T2", "T3"):
            write_song_file(tmp_path, song_id)

        async def scenario():
            cache = SongCache(
                make_loader([]),
                ttl_minutes=5,
                removal_listener=SongFileRemover(tmp_path),
            )
            for song_id in ("T1", "T2", "T3"):
                cache.put(song_id, make_song(song_id))
            await cache.invalidate_all()
            return len(cache)

        assert asyncio.run(scenario()) == 0
        assert list(tmp_path.iterdir()) == []

    def test_close_invalidates_entries(self):
        listener = RecordingListener()

        async def scenario():
            cache = SongCache(make_loader([]), ttl_minutes=5, removal_listener=listener)
            cache.put("T1", make_song("T1"))
            await cache.start_background_cleanup()
            await cache.close()

        asyncio.run(scenario())

        assert listener.removed == [("T1", RemovalCause.EXPLICIT)]

    def test_close_fails_pending_lookups(self):
        async def scenario():
            gate = asyncio.Event()

            async def loader(song_id):
                await gate.wait()
                return make_song(song_id)

            cache = SongCache(loader, ttl_minutes=5)
            started = asyncio.create_task(cache.get("T1"))
            await asyncio.sleep(0)
            not_started = asyncio.create_task(cache.get("T2"))
            await asyncio.sleep(0)
            await cache.close()
            return await asyncio.gather(started, not_started, return_exceptions=True)

        errors = asyncio.run(scenario())

        assert all(isinstance(e, SongLookupError) for e in errors)
        assert "closed" in str(errors[0])

    def test_removals_of_the_same_song_do_not_overlap(self):
        events = []

        async def slow_listener(song, cause):
            events.append(("start", song.id))
            await asyncio.sleep(0.01)
            events.append(("end", song.id))

        async def scenario():
            cache = SongCache(
                make_loader([]),
                ttl_minutes=5,
                removal_listener=slow_listener,
                maximum_size=1,
            )
            cache.put("a", make_song("a"))
            cache.put("b", make_song("b"))  # evicts a
            cache.put("a", make_song("a"))  # evicts b
            cache.put("b", make_song("b"))  # evicts a again
            await cache.wait_for_removals()

        asyncio.run(scenario())

        events_for_a = [event for event, song_id in events if song_id == "a"]
        assert events_for_a == ["start", "end", "start", "end"]

    def test_failing_listener_does_not_break_eviction(self, caplog):
        async def failing_listener(song, cause):
            raise FileCleanupError(f"cannot delete {song.id}")

        async def scenario():
            cache = SongCache(
                make_loader([]), ttl_minutes=5, removal_listener=failing_listener
            )
            cache.put("T1", make_song("T1"))
            await cache.invalidate_all()
            return len(cache)

        with caplog.at_level(logging.WARNING):
            assert asyncio.run(scenario()) == 0

        assert "cannot delete T1" in caplog.text


class TestSongFileRemover:
    def test_deletes_song_file(self, tmp_path):
        path = write_song_file(tmp_path, "T1")
        remover = SongFileRemover(tmp_path)

        asyncio.run(remover(make_song("T1"), RemovalCause.EXPLICIT))

        assert not path.exists()

    def test_missing_file_is_not_an_error(self, tmp_path):
        remover = SongFileRemover(tmp_path)
        asyncio.run(remover(make_song("T1"), RemovalCause.EXPIRED))

    def test_other_failures_raise_cleanup_error(self, tmp_path, monkeypatch):
        write_song_file(tmp_path, "T1")

        def refuse(self, missing_ok=False):
            raise PermissionError("read-only file system")

        monkeypatch.setattr(Path, "unlink", refuse)
        remover = SongFileRemover(tmp_path)

        with pytest.raises(FileCleanupError, match="read-only"):
            asyncio.run(remover(make_song("T1"), RemovalCause.SIZE))


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        SongCache(make_loader([]), ttl_minutes=0)
    with pytest.raises(ValueError):
        SongCache(make_loader([]), ttl_minutes=5, maximum_size=0)
