import threading

import pytest

from order_ledger.background import BackgroundDispatcher, gather_settled
from order_ledger.images import ImageRefKind, classify, display_url, is_present
from order_ledger.models import new_id
from order_ledger.reactive import BehaviorSubject


def test_subject_replays_latest_and_survives_failing_observer():
    subject = BehaviorSubject(0, name="n")
    seen: list[int] = []

    def _boom(_value):
        raise RuntimeError("observer bug")

    subject.publish(1)
    subject.subscribe(_boom)
    unsubscribe = subject.subscribe(seen.append)
    subject.publish(2)
    unsubscribe()
    subject.publish(3)

    assert seen == [1, 2]
    assert subject.value == 3


def test_gather_settled_reports_every_outcome_in_order():
    def _fail():
        raise ValueError("nope")

    outcomes = gather_settled([lambda: 1, _fail, lambda: 3], concurrency=3)

    assert [o.value for o in outcomes] == [1, None, 3]
    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, ValueError)
    with pytest.raises(ValueError):
        gather_settled([lambda: 1], concurrency=0)


def test_dispatcher_detaches_failures_and_drains():
    dispatcher = BackgroundDispatcher(max_workers=1)
    release = threading.Event()
    done: list[str] = []

    def _slow():
        release.wait(5)
        done.append("slow")

    def _broken():
        raise RuntimeError("detached failure")

    try:
        dispatcher.spawn(_slow, label="slow")
        failed = dispatcher.spawn(_broken, label="broken")

        assert dispatcher.drain(timeout=0.05) is False
        release.set()
        assert dispatcher.drain(timeout=5) is True
        assert done == ["slow"]
        assert isinstance(failed.exception(), RuntimeError)
    finally:
        dispatcher.shutdown()

    with pytest.raises(RuntimeError):
        dispatcher.spawn(lambda: None)


@pytest.mark.parametrize(
    ("ref", "kind", "url"),
    [
        (None, ImageRefKind.ABSENT, ""),
        ("   ", ImageRefKind.ABSENT, ""),
        ("data:image/png;base64,AAAA", ImageRefKind.INLINE, "data:image/png;base64,AAAA"),
        ("https://cdn.example/c.png", ImageRefKind.URL, "https://cdn.example/c.png"),
        ("drive_1717171717", ImageRefKind.PENDING_UPLOAD, ""),
        ("1AbCdEf", ImageRefKind.DRIVE_FILE, "https://drive.google.com/uc?export=view&id=1AbCdEf"),
    ],
)
def test_image_reference_kinds(ref, kind, url):
    assert classify(ref) is kind
    assert is_present(ref) is (kind is not ImageRefKind.ABSENT)
    assert display_url(ref) == url


def test_new_id_is_time_prefixed_and_random_suffixed():
    a = new_id(clock=lambda: 1_700_000_000.0)
    b = new_id(clock=lambda: 1_700_000_000.0)
    later = new_id(clock=lambda: 1_800_000_000.0)

    assert a != b
    assert a[:-11] == b[:-11]
    assert later[:-11] > a[:-11]
    assert a.isalnum() and a == a.lower()


def test_subscribe_replay_does_not_hold_the_subject_lock():
    subject = BehaviorSubject(0, name="n")
    publisher_finished: list[bool] = []

    def _observer(value):
        if value == 0:
            # Another thread publishing while the replay runs must not block.
            t = threading.Thread(target=subject.publish, args=(1,))
            t.start()
            t.join(timeout=2)
            publisher_finished.append(not t.is_alive())

    subject.subscribe(_observer)

    assert publisher_finished == [True]
    assert subject.value == 1
