import pytest

from states_data import Place


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FirstChoice:
    """Stands in for random.Random: always picks the first candidate."""

    def choice(self, seq):
        return seq[0]


A = Place("A", "Alpha", "Aville", "AA")
B = Place("B", "Bravo", "Bburg", "BB")
C = Place("C", "Charlie", "Cton", "CC")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def abc():
    return (A, B, C)
