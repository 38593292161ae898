# cayman_bank/i18n.py
from __future__ import annotations

from typing import Dict


def normalize_lang(code: str | None) -> str:
    """
    Normalizes a language code (he-IL, en-US, or a full Accept-Language
    header) to the short codes the catalog knows: en / he
    """
    if not code:
        return "en"

    code = code.split(",", 1)[0].strip().lower()

    if code.startswith("he"):
        return "he"
    if code.startswith("iw"):  # legacy Hebrew code still sent by some clients
        return "he"

    return "en"


LANG_DATA: Dict[str, Dict[str, str]] = {
    "en": {
        # ----- withdrawal form -----
        "ERR_ACCOUNT_REQUIRED": "Please select an account",
        "ERR_AMOUNT_INVALID": "Please enter a valid amount",
        "ERR_BANK_DETAILS": "Please fill in all bank details",
        "DEFAULT_WITHDRAW_DESCRIPTION": "Withdrawal to external bank",

        # ----- gates -----
        "ERR_VAT_INVALID": "Invalid VAT code",
        "ERR_COT_INVALID": "Invalid COT code",
        "ERR_GATE_LOCKED": "Too many invalid codes. Please start the withdrawal again.",

        # ----- decisions -----
        "INFO_OTP_REQUIRED": "OTP verification required. Code: {code} (expires in {minutes} minutes)",
        "INFO_OTP_SENT": "OTP verification required. Enter the code we sent you (expires in {minutes} minutes)",
        "INFO_PENDING_APPROVAL": "Transaction submitted for admin approval due to amount or daily limits.",
        "ERR_WITHDRAW_FAILED": "Failed to process withdrawal",
        "ERR_BACKEND": "The banking service is temporarily unavailable. Your details were kept, please try again.",
        "SUCCESS_WITHDRAWAL": "Withdrawal of ${amount} completed",

        # ----- otp -----

        # ----- account operations -----
        "ERR_SAME_ACCOUNT": "Cannot transfer to the same account",
        "ERR_INSUFFICIENT_FUNDS": "Insufficient funds",
        "ERR_ACCOUNT_FROZEN": "Your account is frozen. Please contact support.",
        "ERR_ACCOUNT_NOT_FOUND": "Account not found",
        "DEFAULT_DEPOSIT_DESCRIPTION": "Deposit",
        "TRANSFER_TO": "Transfer to {account_number}",
        "TRANSFER_FROM": "Transfer from {account_number}",
        "TRANSFER_REVERSAL": "Reversal of failed transfer to {account_number}",

        # ----- admin -----
        "ADMIN_APPROVED_SUFFIX": "(Admin Approved)",
        "ADMIN_FROZEN_REASON": "Frozen by admin",
        "ADMIN_PENDING_NOTICE": (
            "Withdrawal held for review\n"
            "pending={pending_id}\n"
            "account={account_number}\n"
            "amount={amount}"
        ),
        "ADMIN_NO_PENDING": "No pending transactions.",
        "ADMIN_NO_PERMISSION": "Not authorized.",
    },
    "he": {
        "ERR_ACCOUNT_REQUIRED": "נא לבחור חשבון",
        "ERR_AMOUNT_INVALID": "נא להזין סכום תקין",
        "ERR_BANK_DETAILS": "נא למלא את כל פרטי הבנק",
        "DEFAULT_WITHDRAW_DESCRIPTION": "משיכה לבנק חיצוני",

        "ERR_VAT_INVALID": "קוד VAT שגוי",
        "ERR_COT_INVALID": "קוד COT שגוי",
        "ERR_GATE_LOCKED": "יותר מדי קודים שגויים. נא להתחיל את המשיכה מחדש.",

        "INFO_OTP_REQUIRED": "נדרש אימות OTP. קוד: {code} (בתוקף {minutes} דקות)",
        "INFO_OTP_SENT": "נדרש אימות OTP. הזן את הקוד שנשלח אליך (בתוקף {minutes} דקות)",
        "INFO_PENDING_APPROVAL": "העסקה הועברה לאישור מנהל בשל סכום או מגבלה יומית.",
        "ERR_WITHDRAW_FAILED": "המשיכה נכשלה",
        "ERR_BACKEND": "שירות הבנק אינו זמין כרגע. הפרטים נשמרו, נסה שוב.",
        "SUCCESS_WITHDRAWAL": "משיכה של ${amount} הושלמה",


        "ERR_SAME_ACCOUNT": "לא ניתן להעביר לאותו חשבון",
        "ERR_INSUFFICIENT_FUNDS": "אין מספיק יתרה",
        "ERR_ACCOUNT_FROZEN": "החשבון שלך מוקפא. נא לפנות לתמיכה.",
        "ERR_ACCOUNT_NOT_FOUND": "החשבון לא נמצא",
    },
}


def t(lang: str | None, key: str, **kwargs) -> str:
    """
    Simple lookup:
    1. try the requested language
    2. fall back to en
    3. fall back to the key itself
    """
    lang = normalize_lang(lang)
    data = LANG_DATA.get(lang, {})
    if key in data:
        text = data[key]
    else:
        text = LANG_DATA["en"].get(key, key)
    return text.format(**kwargs) if kwargs else text
