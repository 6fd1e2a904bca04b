"""HTML pages served by the auth endpoints."""

from html import escape
from urllib.parse import quote, urlencode

_STYLE = """
body { font-family: sans-serif; max-width: 32rem; margin: 4rem auto; text-align: center; }
.code { font-family: monospace; font-size: 2rem; letter-spacing: .2rem; margin: 1rem 0; }
button, .button { font-size: 1rem; padding: .5rem 1.5rem; margin: .5rem; }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{escape(title)}</title>
<style>{_STYLE}</style>
</head>
<body>
{body}
</body>
</html>"""


def login_complete_page() -> str:
    """Shown after a browser login without redirect_uri; closes itself."""
    return _page(
        "Signed In",
        """<h1>Signed in</h1>
<p>You can close this window.</p>
<script>setTimeout(function () { window.close(); }, 1500);</script>""",
    )


def already_approved_page() -> str:
    return _page(
        "Device Authorization",
        """<h1>Already Approved</h1>
<p>This code has already been approved. You can close this window.</p>""",
    )


def request_denied_page() -> str:
    return _page(
        "Device Authorization",
        """<h1>Request Denied</h1>
<p>This device request was denied. Start a new sign-in on your device to try again.</p>""",
    )


def verification_page(user_code: str, provider: str, signed_in_as: str | None = None) -> str:
    """Device verification page.

    Anonymous visitors get a sign-in link that returns here after login.
    Signed-in members get Approve and Deny buttons.
    """
    code = escape(user_code)
    provider_label = escape(provider.capitalize())

    if signed_in_as is None:
        back = "/auth/device/verify?" + urlencode({"code": user_code, "provider": provider})
        login_url = f"/auth/{quote(provider)}/login?" + urlencode({"redirect_uri": back})
        action = f"""<p>To authorize this device, sign in with {provider_label}:</p>
<p><a class="button" href="{escape(login_url)}">Sign in with {provider_label}</a></p>"""
    else:
        action = f"""<p>Signed in as {escape(signed_in_as)}.</p>
<p>
<button onclick="decide('/auth/device/verify')">Approve</button>
<button onclick="decide('/auth/device/deny')">Deny</button>
</p>
<p id="result"></p>
<script>
function decide(path) {{
  fetch(path, {{
    method: "POST",
    credentials: "same-origin",
    headers: {{"Content-Type": "application/json"}},
    body: JSON.stringify({{user_code: "{code}"}})
  }}).then(function (r) {{ return r.json().then(function (b) {{ return [r.ok, b]; }}); }})
    .then(function (res) {{
      document.getElementById("result").textContent = res[0]
        ? (path.endsWith("deny") ? "Request denied. You can close this window."
                                 : "Device authorized. You can close this window and return to your device.")
        : (res[1].detail || "Something went wrong");
    }});
}}
</script>"""

    return _page(
        "Device Authorization",
        f"""<h1>Authorize Device</h1>
<p>Please confirm that you see this code on your device:</p>
<div class="code">{code}</div>
{action}
<p><small>Code expires in 10 minutes</small></p>""",
    )
