from chatmesh.errors import ChatError, NotFoundError


def test_not_found_is_a_chat_error_with_its_message():
    err = NotFoundError("room r1 not found")
    assert isinstance(err, ChatError)
    assert str(err) == "room r1 not found"


def test_not_found_keeps_its_arguments():
    err = NotFoundError("subscription not found")
    assert err.args == ("subscription not found",)
    assert str(err) == "subscription not found"


def test_plain_chat_error_is_not_a_not_found_error():
    err = ChatError("boom")
    assert not isinstance(err, NotFoundError)
    assert str(err) == "boom"
    assert issubclass(NotFoundError, ChatError)