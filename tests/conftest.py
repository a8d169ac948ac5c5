"""
Brief: Global pytest configuration: src path, per-test timeout, DNS helpers.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys

import pytest

# Ensure 'src' is on sys.path so 'dohgate' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)
# Shared helpers such as dns_stubs live next to this file
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
if TESTS_DIR not in sys.path:
    sys.path.insert(0, TESTS_DIR)

from dnslib import QTYPE, DNSQuestion, DNSRecord  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


def build_query(*names, qtype="A", qid=0x1234):
    """
    Brief: Build a wire-format DNS query with one question per name.

    Inputs:
      - names: query names (zero or more)
      - qtype: record type name
      - qid: message id

    Outputs:
      - bytes: packed DNS message
    """
    record = DNSRecord()
    record.header.id = qid
    for name in names:
        record.add_question(DNSQuestion(name, getattr(QTYPE, qtype)))
    return bytes(record.pack())


@pytest.fixture
def make_query():
    return build_query


class FakeResolver:
    """Records questions and returns a canned answer or raises."""

    def __init__(self, answer=b"", error=None):
        self.answer = answer
        self.error = error
        self.questions = []

    async def query(self, question):
        self.questions.append(question)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def fake_resolver():
    return FakeResolver
