"""Outline a first draft for the kind of content the request asks for."""

CONTENT_TYPES = {
    "email": ("이메일", "메일", "email"),
    "document": ("문서", "보고서", "제안서", "document", "report"),
    "presentation": ("프레젠테이션", "발표", "presentation", "ppt"),
    "memo": ("메모", "요약", "memo", "summary"),
}

OUTLINES = {
    "email": ["Subject", "Greeting", "Body", "Call to action", "Sign-off"],
    "document": ["Title", "Background", "Main points", "Conclusion"],
    "presentation": ["Title slide", "Agenda", "Key messages", "Q&A"],
    "memo": ["Topic", "Key points", "Action items"],
    "general": ["Introduction", "Body", "Closing"],
}


class ContentDraftWorkflow:
    name = "contentDraft"

    def detect_type(self, text: str) -> tuple[str, str]:
        lowered = text.lower()
        for content_type, keywords in CONTENT_TYPES.items():
            for keyword in keywords:
                if keyword in lowered:
                    return content_type, keyword
        return "general", ""

    def run(self, context: dict) -> dict:
        text = context.get("input", "")
        content_type, keyword = self.detect_type(text)
        return {
            "contentType": content_type,
            "detectedKeyword": keyword,
            "outline": OUTLINES[content_type],
            "status": "draft",
        }


workflow = ContentDraftWorkflow()
