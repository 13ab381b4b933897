import uuid

from swasthya.core.structured_logging import build_log_context


def test_build_log_context_keeps_only_identifiers():
    user_id = uuid.uuid4()
    conversation_id = uuid.uuid4()

    context = build_log_context(
        user_id=user_id,
        role="patient",
        conversation_id=conversation_id,
        route="/api/messages/send",
        method="POST",
    )

    assert context == {
        "user_id": str(user_id),
        "role": "patient",
        "conversation_id": str(conversation_id),
        "route": "/api/messages/send",
        "method": "POST",
    }


def test_build_log_context_drops_empty_fields():
    assert build_log_context() == {}
    assert build_log_context(role="doctor", appointment_id=None) == {"role": "doctor"}
