import threading
import time
import unittest

from intelligrade.errors import ServiceError
from intelligrade.models import ChatMessage
from intelligrade.session import TUTOR_ERROR_MESSAGE, TutorConversation
from intelligrade.streaming import CancelToken, FragmentStream


def _failing(parts, exc):
    def gen():
        for p in parts:
            yield p
        raise exc
    return gen


class FragmentStreamTests(unittest.TestCase):
    def test_fragments_arrive_in_order(self):
        stream = FragmentStream(lambda: ["a", "b", "", "c"])
        self.assertEqual(list(stream), ["a", "b", "c"])

    def test_source_is_not_called_until_iteration(self):
        calls = []

        def factory():
            calls.append(1)
            return ["x"]

        stream = FragmentStream(factory)
        self.assertEqual(calls, [])
        self.assertEqual("".join(stream), "x")
        self.assertEqual(calls, [1])

    def test_single_use(self):
        stream = FragmentStream(lambda: ["x"])
        list(stream)
        with self.assertRaises(RuntimeError):
            iter(stream)

    def test_mid_stream_error_surfaces_as_service_error(self):
        stream = FragmentStream(_failing(["Hello"], ConnectionError("reset")))
        received = []
        with self.assertRaises(ServiceError):
            for fragment in stream:
                received.append(fragment)
        self.assertEqual(received, ["Hello"])

    def test_cancel_ends_iteration_cleanly(self):
        release = threading.Event()

        def slow():
            yield "first"
            release.wait(5)
            yield "second"

        token = CancelToken()
        stream = FragmentStream(slow, cancel_token=token)
        received = []
        for fragment in stream:
            received.append(fragment)
            token.cancel()
            release.set()
        self.assertEqual(received, ["first"])
        self.assertTrue(stream.cancel_token.cancelled)


class FakeTutorGateway:
    def __init__(self, parts=None, error=None, fail_open=None, source=None):
        self.parts = parts or []
        self.error = error
        self.fail_open = fail_open
        self.source = source
        self.requests = []
        self.streams = []

    def request_tutor_reply(self, history, new_message, cancel_token=None):
        self.requests.append((list(history), new_message))
        if self.fail_open is not None:
            raise self.fail_open
        if self.source is not None:
            stream = FragmentStream(self.source, cancel_token)
        elif self.error is not None:
            stream = FragmentStream(_failing(self.parts, self.error), cancel_token)
        else:
            stream = FragmentStream(lambda: list(self.parts), cancel_token)
        self.streams.append(stream)
        return stream


class SlowUpstream:
    """Twenty fragments, one every 50ms; counts how many were pulled."""

    def __init__(self, count=20, delay=0.05):
        self.count = count
        self.delay = delay
        self.pulled = 0

    def __call__(self):
        for i in range(self.count):
            time.sleep(self.delay)
            self.pulled += 1
            yield f"part{i} "


class TutorConversationTests(unittest.TestCase):
    def test_reply_grows_fragment_by_fragment(self):
        convo = TutorConversation()
        gateway = FakeTutorGateway(parts=["Mitosis ", "has ", "four phases."])
        seen = []
        for fragment in convo.send(gateway, "What is mitosis?"):
            seen.append(convo.messages[-1].content)
            self.assertTrue(convo.in_flight)
        self.assertEqual(seen, ["Mitosis ", "Mitosis has ", "Mitosis has four phases."])
        self.assertEqual([m.role for m in convo.messages], ["user", "model"])
        self.assertFalse(convo.in_flight)

    def test_prior_history_is_sent(self):
        convo = TutorConversation()
        gateway = FakeTutorGateway(parts=["ok"])
        list(convo.send(gateway, "First"))
        list(convo.send(gateway, "Second"))
        history, message = gateway.requests[1]
        self.assertEqual([m.content for m in history], ["First", "ok"])
        self.assertEqual(message, "Second")

    def test_failure_to_open_adds_one_system_message(self):
        convo = TutorConversation()
        list(convo.send(FakeTutorGateway(fail_open=ServiceError("down")), "Hi"))
        self.assertEqual(convo.messages, [
            ChatMessage("user", "Hi"),
            ChatMessage("system", TUTOR_ERROR_MESSAGE),
        ])

    def test_mid_stream_failure_keeps_partial_reply(self):
        convo = TutorConversation()
        gateway = FakeTutorGateway(parts=["Partial"], error=ConnectionError("reset"))
        list(convo.send(gateway, "Hi"))
        self.assertEqual([m.role for m in convo.messages], ["user", "model", "system"])
        self.assertEqual(convo.messages[1].content, "Partial")
        self.assertEqual(sum(m.role == "system" for m in convo.messages), 1)

    def test_blank_input_is_ignored(self):
        convo = TutorConversation()
        gateway = FakeTutorGateway(parts=["x"])
        list(convo.send(gateway, "   "))
        self.assertEqual(convo.messages, [])
        self.assertEqual(gateway.requests, [])

    def test_send_during_reply_is_ignored(self):
        convo = TutorConversation()
        gateway = FakeTutorGateway(parts=["one", "two"])
        first = convo.send(gateway, "First")
        next(first)
        self.assertEqual(list(convo.send(gateway, "Second")), [])
        list(first)
        self.assertEqual(len(gateway.requests), 1)

    def test_abandoned_reply_stops_the_upstream(self):
        convo = TutorConversation()
        upstream = SlowUpstream()
        gateway = FakeTutorGateway(source=upstream)
        reply = convo.send(gateway, "Explain photosynthesis")
        first = next(reply)
        reply.close()
        time.sleep(0.5)

        self.assertTrue(gateway.streams[0].cancel_token.cancelled)
        self.assertLessEqual(upstream.pulled, 3)
        self.assertFalse(convo.in_flight)
        self.assertEqual(convo.messages[-1].role, "model")
        self.assertEqual(convo.messages[-1].content, first)

    def test_stop_keeps_partial_reply(self):
        convo = TutorConversation()
        upstream = SlowUpstream()
        gateway = FakeTutorGateway(source=upstream)
        received = []
        for fragment in convo.send(gateway, "Explain photosynthesis"):
            received.append(fragment)
            convo.cancel()
        time.sleep(0.3)

        self.assertEqual(len(received), 1)
        self.assertLess(upstream.pulled, upstream.count)
        self.assertEqual([m.role for m in convo.messages], ["user", "model"])
        self.assertEqual(convo.messages[1].content, received[0])
        self.assertFalse(convo.in_flight)

    def test_cancel_without_reply_is_harmless(self):
        convo = TutorConversation()
        convo.cancel()
        self.assertEqual(convo.messages, [])


if __name__ == "__main__":
    unittest.main()
