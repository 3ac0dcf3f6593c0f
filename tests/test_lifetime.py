import threading
import time
import unittest

from ioclite import Container


class TestLifetimeControl(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_resolve_singleton_returns_same_instance(self):
        class A: ...

        self.cont.singleton(A, lambda _: A())
        a1 = self.cont.resolve(A)
        a2 = self.cont.resolve(A)
        assert a2 is a1, "singleton should return the cached instance"

    def test_singleton_factory_is_invoked_once(self):
        class A: ...

        calls = []

        def make(_):
            calls.append(1)
            return A()

        self.cont.singleton(A, make)
        for _ in range(5):
            self.cont.resolve(A)

        assert len(calls) == 1

    def test_resolve_register_returns_new_instances(self):
        class A: ...

        self.cont.register(A, lambda _: A())
        a1 = self.cont.resolve(A)
        a2 = self.cont.resolve(A)
        assert a2 is not a1, "register should return new instances"

    def test_singleton_returns_container(self):
        assert self.cont.singleton("name", lambda _: "value") is self.cont

    def test_singleton_factory_receives_container(self):
        class DB: ...

        class Repo:
            def __init__(self, db: DB):
                self.db = db

        self.cont.singleton(Repo, lambda c: Repo(c.resolve(DB)))

        repo = self.cont.resolve(Repo)
        assert isinstance(repo.db, DB)
        assert self.cont.resolve(Repo) is repo

    def test_singleton_is_shared_by_dependents(self):
        class Settings: ...

        class ServiceA:
            def __init__(self, settings: Settings):
                self.settings = settings

        class ServiceB:
            def __init__(self, settings: Settings):
                self.settings = settings

        self.cont.singleton(Settings, lambda _: Settings())

        a = self.cont.resolve(ServiceA)
        b = self.cont.resolve(ServiceB)
        assert a.settings is b.settings

    def test_singleton_reregistration_keeps_cached_instance(self):
        class A: ...

        self.cont.singleton(A, lambda _: A())
        first = self.cont.resolve(A)

        self.cont.singleton(A, lambda _: A())
        assert self.cont.resolve(A) is first

    def test_register_after_singleton_replaces_it(self):
        class A: ...

        self.cont.singleton(A, lambda _: A())
        first = self.cont.resolve(A)

        self.cont.register(A, lambda _: A())
        assert self.cont.resolve(A) is not first

    def test_singleton_is_constructed_once_across_threads(self):
        class Pool: ...

        calls = []

        def make(_):
            calls.append(1)
            time.sleep(0.01)
            return Pool()

        self.cont.singleton(Pool, make)

        results = []

        def worker():
            results.append(self.cont.resolve(Pool))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)
