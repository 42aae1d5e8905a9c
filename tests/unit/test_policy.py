"""
Unit tests for the archiving policy.
"""

from msgarchive.mam_server.archive.policy import ArchivePolicy, OptOutPolicy, extract_body
from msgarchive.mam_server.protocol.jid import JID
from msgarchive.mam_server.protocol.stanza import from_bytes


class TestExtractBody:
    """Tests for extract_body()."""

    def test_chat_message(self):
        packet = from_bytes(b'<message type="chat"><body>Hello</body></message>')
        assert extract_body(packet, ignore_group_chats=False) == "Hello"

    def test_namespaced_message(self):
        packet = from_bytes(b'<message xmlns="jabber:client"><body>Hi</body></message>')
        assert extract_body(packet, ignore_group_chats=False) == "Hi"

    def test_no_body_is_dropped(self):
        packet = from_bytes(b"<message><composing/></message>")
        assert extract_body(packet, ignore_group_chats=False) is None

    def test_empty_body_is_dropped(self):
        packet = from_bytes(b"<message><body/></message>")
        assert extract_body(packet, ignore_group_chats=False) is None

    def test_non_message_is_dropped(self):
        packet = from_bytes(b"<presence><body>not a message</body></presence>")
        assert extract_body(packet, ignore_group_chats=False) is None

    def test_groupchat_toggle(self):
        packet = from_bytes(b'<message type="groupchat"><body>room</body></message>')
        assert extract_body(packet, ignore_group_chats=False) == "room"
        assert extract_body(packet, ignore_group_chats=True) is None

    def test_ignore_group_chats_keeps_chat(self):
        packet = from_bytes(b'<message type="chat"><body>Hello</body></message>')
        assert extract_body(packet, ignore_group_chats=True) == "Hello"


class TestPolicies:
    """Tests for ArchivePolicy and OptOutPolicy."""

    def test_default_archives_everyone(self):
        policy = ArchivePolicy()
        assert policy.should_archive(JID("alice", "example.org"))

    def test_policy_uses_group_chat_setting(self):
        packet = from_bytes(b'<message type="groupchat"><body>room</body></message>')
        assert ArchivePolicy(ignore_group_chats=True).extract_body(packet) is None

    def test_opt_out(self):
        policy = OptOutPolicy(["Carol@Example.org"])
        assert not policy.should_archive(JID("carol", "example.org", "phone"))
        assert policy.should_archive(JID("alice", "example.org"))
