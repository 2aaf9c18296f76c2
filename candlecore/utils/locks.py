"""
읽기/쓰기 락.

[ 역할 ]
    PaperBroker의 공유 상태 보호용. 쓰기는 단독, 읽기는 동시에 여러 스레드 허용.
    대기 중인 writer가 있으면 새 reader는 기다린다 (writer 기아 방지).

[ 호출하는 곳 ]
    - brokers/paper_broker.py::PaperBroker
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """writer 우선 읽기/쓰기 락.

    사용법:
        lock = ReadWriteLock()
        with lock.read_locked():
            ...  # 조회
        with lock.write_locked():
            ...  # 상태 변경
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting > 0:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers > 0:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
