"""
Terminal HTML pages for the OAuth flow: landing, success, error, and the
generic failure page. All interpolated text is HTML-escaped.
"""

import html as _html

_STYLE = """
      body {
        font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
        display: flex;
        justify-content: center;
        align-items: center;
        min-height: 100vh;
        margin: 0;
        background-color: #f5f5f5;
      }
      .container {
        text-align: center;
        padding: 2rem;
        background: white;
        border-radius: 8px;
        box-shadow: 0 2px 4px rgba(0, 0, 0, 0.1);
      }
      h1 { color: %(accent)s; margin-bottom: 1rem; }
      .message { color: #666; margin-bottom: 2rem; }
      .meta { color: #999; font-size: 0.8rem; margin-top: 1.5rem; }
      .button {
        display: inline-block;
        background-color: %(button)s;
        color: white;
        padding: 12px 24px;
        border-radius: 4px;
        text-decoration: none;
        font-weight: 500;
      }
"""


def _page(title: str, heading: str, body: str, accent: str, button: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <title>{_html.escape(title)}</title>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <meta name="referrer" content="no-referrer">
    <style>{_STYLE % {"accent": accent, "button": button}}</style>
  </head>
  <body>
    <div class="container">
      <h1>{_html.escape(heading)}</h1>
      {body}
    </div>
  </body>
</html>
"""


def render_landing_page(provider_label: str, auth_url: str) -> str:
    body = (f'<a href="{_html.escape(auth_url, quote=True)}" class="button">'
            f"Continue with {_html.escape(provider_label)}</a>")
    return _page(f"{provider_label} OAuth Authentication",
                 f"{provider_label} Authentication", body, "#333", "#4285f4")


def render_success_page(message: str = "Authentication successful!") -> str:
    body = (f'<p class="message">{_html.escape(message)}</p>'
            '<p class="meta">You can close this window.</p>')
    return _page("Authentication Success", "Success!", body, "#43a047", "#43a047")


def render_error_page(message: str, provider: str) -> str:
    retry = f"/oauth/{_html.escape(provider, quote=True)}"
    body = (f'<p class="message">{_html.escape(message)}</p>'
            f'<a href="{retry}" class="button">Try Again</a>')
    return _page("Authentication Error", "Authentication Error", body, "#d32f2f", "#4285f4")


def render_generic_failure(request_id: str) -> str:
    body = ('<p class="message">Something went wrong while processing your request.</p>'
            f'<p class="meta">Reference: {_html.escape(request_id)}</p>')
    return _page("Error", "Unexpected Error", body, "#d32f2f", "#4285f4")


def render_rejection_page(message: str, request_id: str) -> str:
    body = (f'<p class="message">{_html.escape(message)}</p>'
            f'<p class="meta">Reference: {_html.escape(request_id)}</p>')
    return _page("Request Rejected", "Request Rejected", body, "#d32f2f", "#4285f4")
