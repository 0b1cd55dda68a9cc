from __future__ import annotations

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.client.errors import AuthChallengeError
from app.client.gate import GateState, SensitiveEntryGate
from app.client.settings import ClientSettings
from app.schemas import EntryResponse


def _entry(sensitive: bool) -> EntryResponse:
    return EntryResponse(
        id=1,
        title="secret",
        content="private words",
        media_urls=["/uploads/a.png"],
        sensitive=sensitive,
        user_email="foo@bar.com",
    )


class FakeVerifier:
    def __init__(self, password: str):
        self.password = password
        self.calls: list[tuple[str, str | None]] = []

    async def verify_password(self, password, user_email=None):
        self.calls.append((password, user_email))
        if password != self.password:
            raise AuthChallengeError("INVALID_PASSWORD")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class SensitiveEntryGateTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.settings = ClientSettings(is_password_protection_enabled=True)
        self.verifier = FakeVerifier("pw-123456")
        self.clock = FakeClock()
        self.gate = SensitiveEntryGate(self.settings, self.verifier, user_email="foo@bar.com", clock=self.clock)

    async def test_protection_off_bypasses_sensitive_entries(self):
        self.settings.is_password_protection_enabled = False
        session = self.gate.open(_entry(sensitive=True))

        self.assertEqual(session.state, GateState.BYPASSED)
        self.assertEqual(session.visible_content(), "private words")
        self.assertEqual(self.verifier.calls, [])

    async def test_non_sensitive_entry_is_bypassed(self):
        session = self.gate.open(_entry(sensitive=False))
        self.assertFalse(session.is_locked)
        self.assertEqual(session.visible_media(), ["/uploads/a.png"])

    async def test_locked_until_correct_password(self):
        session = self.gate.open(_entry(sensitive=True))
        self.assertEqual(session.state, GateState.LOCKED)
        self.assertIsNone(session.visible_content())
        self.assertEqual(session.visible_media(), [])

        with self.assertRaises(AuthChallengeError) as ctx:
            await session.verify("wrong")
        self.assertEqual(ctx.exception.message, "Invalid password")
        self.assertTrue(session.is_locked)

        await session.verify("pw-123456")
        self.assertEqual(session.state, GateState.UNLOCKED)
        self.assertEqual(session.visible_content(), "private words")
        self.assertEqual(self.verifier.calls[-1], ("pw-123456", "foo@bar.com"))

    async def test_reopening_locks_again(self):
        first = self.gate.open(_entry(sensitive=True))
        await first.verify("pw-123456")

        second = self.gate.open(_entry(sensitive=True))
        self.assertTrue(second.is_locked)
        self.assertFalse(first.is_locked)

    async def test_verify_on_unlocked_session_does_not_call_server(self):
        session = self.gate.open(_entry(sensitive=False))
        await session.verify("anything")
        self.assertEqual(self.verifier.calls, [])

    async def test_auto_lock_after_timeout(self):
        self.settings.auto_lock_timeout = 5
        session = self.gate.open(_entry(sensitive=True))
        await session.verify("pw-123456")

        self.clock.now += 5 * 60 - 1
        self.assertFalse(session.is_locked)

        self.clock.now += 1
        self.assertTrue(session.is_locked)
        self.assertIsNone(session.visible_content())

    async def test_zero_timeout_never_auto_locks(self):
        session = self.gate.open(_entry(sensitive=True))
        await session.verify("pw-123456")
        self.clock.now += 10 * 24 * 3600
        self.assertFalse(session.is_locked)


if __name__ == "__main__":
    unittest.main()
