"""
Conversational reply. Also serves as the fallback intent when nothing in
the routing table matches the input.
"""

from datetime import datetime, timezone

GREETINGS = ("안녕하세요", "안녕", "하이", "hi", "hello")
HELP_REQUESTS = ("도움", "도와", "help", "문의", "질문")

CAPABILITIES = [
    "Draft content (email, documents, reports)",
    "Manage your schedule (meetings, reminders)",
    "Track tasks (add to-dos, set priorities)",
]


def _reply(text: str, is_fallback: bool) -> dict:
    lowered = text.lower()
    if any(g in lowered for g in GREETINGS):
        return {
            "message": "Hello! This is AIVELLE. What can I help you with?",
            "suggestions": ["이메일을 써줘", "회의를 예약해줘", "할 일을 추가해줘"],
        }
    if any(h in lowered for h in HELP_REQUESTS):
        return {"message": "Here is what I can do:", "suggestions": list(CAPABILITIES)}
    if is_fallback:
        return {
            "message": f'I could not find a specific action for "{text}". Try one of these:',
            "suggestions": ["Be a little more specific", "이메일을 써줘", "할 일을 추가해줘"],
        }
    return {"message": "Sure, tell me what you need.", "suggestions": list(CAPABILITIES)}


def run(context: dict) -> dict:
    text = context.get("input", "")
    is_fallback = bool(context.get("isFallback"))
    response = _reply(text, is_fallback)
    response["type"] = "chat"
    return {
        "response": response,
        "metadata": {
            "intent": context.get("intent"),
            "category": "interact",
            "matchedTriggers": context.get("matchedTriggers", []),
            "isFallback": is_fallback,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }
