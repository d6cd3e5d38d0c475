"""
HTML pages shown in the member's browser, one per verification outcome.
Pure: outcome in, HTMLResponse out. No internal identifiers besides the state token on the consent page.
"""
import html

from fastapi.responses import HTMLResponse

from verify_server.outcomes import Outcome, VerificationResult

RULE_TEXT = "Je m'identifie comme queer / I identify as queer"

_STYLE = """
    body { font-family: Arial, sans-serif; text-align: center; padding: 50px; margin: 0;
           min-height: 100vh; color: white; background: %s; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px; border-radius: 15px;
                 background: rgba(255, 255, 255, 0.1); }
    .rules-box { background: rgba(255, 255, 255, 0.2); padding: 30px; border-radius: 10px; margin: 20px 0; }
    .rule-text { font-size: 18px; font-weight: bold; margin: 20px 0; }
    .btn { padding: 15px 30px; border-radius: 8px; font-weight: bold; text-decoration: none;
           display: inline-block; color: white; margin: 0 10px; }
    .btn-accept { background: #4CAF50; }
    .btn-decline { background: #f44336; }
"""

_BACKGROUND_OK = "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"
_BACKGROUND_SUCCESS = "linear-gradient(135deg, #4CAF50 0%, #45a049 100%)"
_BACKGROUND_FAIL = "linear-gradient(135deg, #f44336 0%, #da190b 100%)"


def _page(title: str, body: str, background: str = _BACKGROUND_FAIL, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title><style>{_STYLE % background}</style></head>
<body>
  <div class="container">
{body}
  </div>
</body>
</html>""",
        status_code=status_code,
    )


def consent_page(state: str) -> HTMLResponse:
    s = html.escape(state)
    return _page(
        "Queernel Rules - Accept to Continue",
        f"""    <h1>🎉 Welcome to Queernel!</h1>
    <p>You have been verified as a 42 student.</p>
    <div class="rules-box">
      <h2>📋 Rules Acceptance Required</h2>
      <div class="rule-text">{html.escape(RULE_TEXT)}</div>
      <p>Please read and accept the rules above to continue with the verification process.</p>
    </div>
    <a href="/auth/rules/accept?state={s}" class="btn btn-accept">✅ Accept &amp; Continue</a>
    <a href="/auth/rules/decline?state={s}" class="btn btn-decline">❌ Decline &amp; Exit</a>""",
        background=_BACKGROUND_OK,
    )


def success_page() -> HTMLResponse:
    return _page(
        "Verification Successful",
        """    <h1>✅ Verification Successful!</h1>
    <h2>Welcome to Queernel!</h2>
    <p>You have successfully accepted the rules and been verified as a 42 student.</p>
    <p>The "42" role has been added to your Discord account.</p>
    <p>You can now close this window and return to Discord.</p>""",
        background=_BACKGROUND_SUCCESS,
    )


def declined_page() -> HTMLResponse:
    return _page(
        "Verification Declined",
        """    <h1>❌ Verification Declined</h1>
    <h2>Rules Not Accepted</h2>
    <p>You have declined to accept the Queernel rules.</p>
    <p>You will not receive the "42" role and cannot access all server features.</p>
    <p>If you change your mind, you can try joining the server again.</p>""",
    )


def expired_page() -> HTMLResponse:
    return _page(
        "Verification Failed",
        """    <h1>❌ Verification Failed</h1>
    <p>Invalid or expired verification request.</p>
    <p>Please try joining the server again.</p>""",
        status_code=400,
    )


def provider_error_page(detail: str | None) -> HTMLResponse:
    return _page(
        "Verification Failed",
        f"""    <h1>❌ Verification Failed</h1>
    <p>The 42 intranet could not confirm your identity: {html.escape(detail or "unknown error")}</p>
    <p>Please try again or contact an administrator.</p>""",
        status_code=502,
    )


def ineligible_page() -> HTMLResponse:
    return _page(
        "Verification Rejected",
        """    <h1>❌ Verification Rejected</h1>
    <p>Your 42 account is not a current student account (staff, inactive, or without cursus or campus).</p>
    <p>Contact an administrator if you think this is a mistake.</p>""",
        status_code=403,
    )


def grant_failed_page() -> HTMLResponse:
    return _page(
        "Verification Failed",
        """    <h1>❌ Role Assignment Failed</h1>
    <p>Your identity was confirmed, but the "42" role could not be added to your account.</p>
    <p>This is a server configuration problem. Please contact an administrator, then try joining again.</p>""",
        status_code=500,
    )


def render_page(result: VerificationResult) -> HTMLResponse:
    """Map a verification result to the page the browser sees."""
    outcome = result.outcome
    if outcome == Outcome.CONSENT_REQUIRED and result.state:
        return consent_page(result.state)
    if outcome == Outcome.SUCCESS:
        return success_page()
    if outcome == Outcome.DECLINED:
        return declined_page()
    if outcome == Outcome.PROVIDER_ERROR:
        return provider_error_page(result.detail)
    if outcome == Outcome.INELIGIBLE:
        return ineligible_page()
    if outcome == Outcome.GRANT_FAILED:
        return grant_failed_page()
    return expired_page()
