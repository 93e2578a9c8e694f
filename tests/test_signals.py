import pytest

from botfleet.engine.signals import FAILED_SENTINEL, READY_SENTINEL, LineClassifier, WorkerSignal


@pytest.mark.parametrize(
    ("line", "stream", "expected"),
    [
        ("🚀 Starting Solana Trading Bot v2", "stdout", WorkerSignal.STARTED),
        ("💰 Wallet Address: 9xQe...", "stdout", WorkerSignal.STARTED),
        (READY_SENTINEL, "stdout", WorkerSignal.STARTED),
        ("Swap executed", "stdout", WorkerSignal.OTHER),
        ("❌ RPC unreachable", "stderr", WorkerSignal.FAILED),
        ("TypeError: x is undefined", "stderr", WorkerSignal.FAILED),
        (FAILED_SENTINEL, "stderr", WorkerSignal.FAILED),
        ("warning: slow RPC", "stderr", WorkerSignal.OTHER),
    ],
)
def test_classify(line: str, stream: str, expected: WorkerSignal) -> None:
    assert LineClassifier().classify(line, stream) is expected  # type: ignore[arg-type]


def test_markers_only_count_on_their_own_stream() -> None:
    classifier = LineClassifier()
    assert classifier.classify("❌ Error loading wallet", "stdout") is WorkerSignal.OTHER
    assert classifier.classify("🚀 Starting Solana Trading Bot", "stderr") is WorkerSignal.OTHER
    assert classifier.classify(READY_SENTINEL, "stderr") is WorkerSignal.OTHER


def test_sentinel_must_match_whole_line() -> None:
    classifier = LineClassifier(startup_markers=())
    assert classifier.classify(f"  {READY_SENTINEL}  ", "stdout") is WorkerSignal.STARTED
    assert classifier.classify(f"echo {READY_SENTINEL}", "stdout") is WorkerSignal.OTHER
