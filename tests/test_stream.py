import pytest

from chatmesh import stream

SITE = "site-a"


@pytest.mark.parametrize(
    ("cfg", "want_name", "want_subjects"),
    [
        (stream.messages(SITE), "MESSAGES_site-a", ("chat.user.*.room.*.site-a.msg.>",)),
        (stream.fanout(SITE), "FANOUT_site-a", ("fanout.site-a.>",)),
        (stream.rooms(SITE), "ROOMS_site-a", ("chat.user.*.request.room.*.site-a.member.>",)),
        (stream.outbox(SITE), "OUTBOX_site-a", ("outbox.site-a.>",)),
        (stream.inbox(SITE), "INBOX_site-a", ()),
    ],
)
def test_stream_configs(cfg, want_name, want_subjects):
    assert cfg.name == want_name
    assert cfg.subjects == want_subjects


def test_configs_compare_by_value():
    assert stream.fanout(SITE) == stream.StreamConfig("FANOUT_site-a", ("fanout.site-a.>",))