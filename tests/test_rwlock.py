"""Tests for the reader/exclusive-writer lock."""

import threading
import time

from netspeed.rwlock import ReadWriteLock


def test_readers_share_access():
    lock = ReadWriteLock()
    inside = threading.Barrier(3, timeout=2.0)

    def reader():
        with lock.read():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=3.0)

    # all three readers were inside the lock together
    assert not inside.broken


def test_writer_excludes_readers():
    lock = ReadWriteLock()
    events = []
    writer_in = threading.Event()

    def writer():
        with lock.write():
            writer_in.set()
            time.sleep(0.1)
            events.append("write-done")

    def reader():
        writer_in.wait(timeout=2.0)
        with lock.read():
            events.append("read")

    w = threading.Thread(target=writer)
    r = threading.Thread(target=reader)
    w.start()
    r.start()
    w.join(timeout=2.0)
    r.join(timeout=2.0)

    assert events == ["write-done", "read"]


def test_writers_are_serialized():
    lock = ReadWriteLock()
    counter = {"value": 0}

    def bump():
        for _ in range(500):
            with lock.write():
                current = counter["value"]
                counter["value"] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert counter["value"] == 2000


def test_lock_released_on_exception():
    lock = ReadWriteLock()

    try:
        with lock.write():
            raise ValueError("boom")
    except ValueError:
        pass

    with lock.read():
        pass
    with lock.write():
        pass
