import pytest

from models.otp_record import OtpRecord, otp_key
from services.otp import (
    OtpService, InvalidInput, NotFound, TooManyAttempts, Expired, Mismatch,
    StoreUnavailable, NotificationFailed, generate_code, is_valid_email,
)
from services.otp_store import StoreError, MemoryOtpStore

EMAIL = "delegate.one@kimun.in.net"
KEY = "delegate,one@kimun,in,net"


class BrokenStore(MemoryOtpStore):
    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on

    def put(self, record):
        if "put" in self.fail_on:
            raise StoreError("put down")
        super().put(record)

    def get(self, key):
        if "get" in self.fail_on:
            raise StoreError("get down")
        return super().get(key)


def _seed(store, clock, otp="123456", attempts=0, ttl_min=15, email=EMAIL):
    store.put(OtpRecord(key=otp_key(email), otp=otp,
                        expires_at=clock() + ttl_min * 60_000, attempts=attempts))


def test_otp_key_replaces_every_dot():
    assert otp_key(EMAIL) == KEY
    assert otp_key("a@b.com") == "a@b,com"


@pytest.mark.parametrize("email,ok", [
    ("a@b.com", True),
    ("first.last@sub.domain.org", True),
    ("no-at-sign.com", False),
    ("a@nodot", False),
    ("a b@c.com", False),
    ("", False),
    ("a$b@c.com", False),
    ("a#b@c.com", False),
    ("a[1]@c.com", False),
    ("a/b@c.com", False),
    ("a@c.com\x7f", False),
    (None, False),
    (12345, False),
])
def test_is_valid_email(email, ok):
    assert is_valid_email(email) is ok


def test_generate_code_is_six_digits_in_range():
    for _ in range(500):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_issue_writes_fresh_record_and_mails_code(otp_service, store, mailer, clock, last_code):
    otp_service.issue(EMAIL)

    rec = store.get(KEY)
    assert rec is not None
    assert rec.attempts == 0
    assert rec.expires_at == clock() + 15 * 60_000
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == EMAIL
    assert last_code() == rec.otp
    assert rec.otp in mailer.sent[0]["html"]


def test_issue_returns_nothing(otp_service):
    assert otp_service.issue(EMAIL) is None


def test_issue_rejects_bad_email_without_touching_store(otp_service, store, mailer):
    with pytest.raises(InvalidInput) as exc:
        otp_service.issue("not-an-email")
    assert exc.value.message == "Invalid email format"
    assert len(store) == 0
    assert mailer.sent == []


def test_issue_overwrites_previous_record(otp_service, store, clock):
    _seed(store, clock, otp="111111", attempts=2)
    otp_service.issue(EMAIL)
    rec = store.get(KEY)
    assert rec.attempts == 0
    assert len(store) == 1


def test_issue_store_failure_sends_no_mail(app, mailer, clock):
    svc = OtpService(BrokenStore({"put"}), mailer, clock=clock)
    with pytest.raises(StoreUnavailable):
        svc.issue(EMAIL)
    assert mailer.sent == []


def test_issue_mail_failure_keeps_record_by_default(otp_service, store, mailer):
    mailer.fail_all = True
    with pytest.raises(NotificationFailed):
        otp_service.issue(EMAIL)
    assert KEY in store


def test_issue_mail_failure_rolls_back_when_enabled(app, store, mailer, clock):
    svc = OtpService(store, mailer, clock=clock, rollback_on_send_failure=True)
    mailer.fail_all = True
    with pytest.raises(NotificationFailed):
        svc.issue(EMAIL)
    assert KEY not in store


def test_issue_then_verify_succeeds_and_consumes(otp_service, store, last_code):
    otp_service.issue(EMAIL)
    otp_service.verify(EMAIL, last_code())
    assert KEY not in store


def test_verify_without_issue_is_not_found(otp_service):
    with pytest.raises(NotFound):
        otp_service.verify(EMAIL, "123456")


@pytest.mark.parametrize("email,code", [
    ("bad", "123456"),
    (EMAIL, "12345"),
    (EMAIL, "1234567"),
    (EMAIL, None),
    (EMAIL, 123456),
    (None, "123456"),
])
def test_verify_rejects_malformed_input(otp_service, store, clock, email, code):
    _seed(store, clock)
    with pytest.raises(InvalidInput) as exc:
        otp_service.verify(email, code)
    assert exc.value.message == "Invalid email or OTP format"
    assert store.get(KEY).attempts == 0


def test_three_wrong_codes_mismatch_mismatch_then_too_many(otp_service, store, clock):
    _seed(store, clock, otp="123456")

    with pytest.raises(Mismatch):
        otp_service.verify(EMAIL, "000000")
    assert store.get(KEY).attempts == 1

    with pytest.raises(Mismatch):
        otp_service.verify(EMAIL, "000001")
    assert store.get(KEY).attempts == 2

    with pytest.raises(TooManyAttempts):
        otp_service.verify(EMAIL, "000002")
    assert KEY not in store


def test_attempt_ceiling_checked_before_expiry_and_match(otp_service, store, clock):
    _seed(store, clock, otp="123456", attempts=3, ttl_min=-1)
    with pytest.raises(TooManyAttempts):
        otp_service.verify(EMAIL, "123456")
    assert KEY not in store


def test_expiry_checked_before_match(otp_service, store, clock):
    _seed(store, clock, otp="123456")
    clock.advance(minutes=15, ms=1)
    with pytest.raises(Expired):
        otp_service.verify(EMAIL, "123456")
    assert KEY not in store


def test_exact_expiry_instant_is_still_valid(otp_service, store, clock):
    _seed(store, clock, otp="123456")
    clock.advance(minutes=15)
    otp_service.verify(EMAIL, "123456")
    assert KEY not in store


def test_reissue_invalidates_old_code(app, store, mailer, clock):
    codes = iter(["111111", "222222"])
    svc = OtpService(store, mailer, clock=clock, code_factory=lambda: next(codes))
    svc.issue(EMAIL)
    svc.issue(EMAIL)

    with pytest.raises(Mismatch):
        svc.verify(EMAIL, "111111")
    svc.verify(EMAIL, "222222")
    assert KEY not in store


def test_verify_store_failure_is_unavailable(app, mailer, clock):
    svc = OtpService(BrokenStore({"get"}), mailer, clock=clock)
    with pytest.raises(StoreUnavailable):
        svc.verify(EMAIL, "123456")


def test_verifier_sends_no_mail(otp_service, store, mailer, clock):
    _seed(store, clock)
    with pytest.raises(Mismatch):
        otp_service.verify(EMAIL, "654321")
    otp_service.verify(EMAIL, "123456")
    assert mailer.sent == []


def test_custom_ceiling_from_constructor(app, store, mailer, clock):
    svc = OtpService(store, mailer, clock=clock, max_attempts=5)
    _seed(store, clock)
    for _ in range(4):
        with pytest.raises(Mismatch):
            svc.verify(EMAIL, "000000")
    with pytest.raises(TooManyAttempts):
        svc.verify(EMAIL, "000000")
