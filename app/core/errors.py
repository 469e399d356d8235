"""أخطاء نظام العلامات المائية.

كل الأخطاء ترث من ``WatermarkError`` حتى تتمكن طبقة HTTP من تحويلها إلى
استجابات موحدة عبر معالجات الاستثناءات في ``app.main``.
"""


class WatermarkError(Exception):
    """الأساس لكل أخطاء العلامات المائية."""

    status_code = 400


class ParseError(WatermarkError):
    """نطاق صفحات يحتوي على جزء غير صالح."""

    def __init__(self, token: str, reason: str = "invalid page range token") -> None:
        self.token = token
        super().__init__(f"{reason}: {token!r}")


class ValidationError(WatermarkError):
    """علامة مائية ينقصها محتوى مطلوب أو حقل رقمي خارج حدوده."""


class UnsupportedFormatError(WatermarkError):
    """صورة العلامة المائية لا يمكن فك ترميزها بصيغة PNG أو JPEG."""

    status_code = 415

    def __init__(self, message: str, watermark_id: str | None = None) -> None:
        self.watermark_id = watermark_id
        super().__init__(message)


class TransformUnavailable(WatermarkError):
    """طُلب تحويل إحداثيات قبل اكتمال تحميل صورة الصفحة."""

    status_code = 409


class WatermarkNotFound(WatermarkError):
    """لا توجد علامة مائية بالمعرف المطلوب."""

    status_code = 404

    def __init__(self, watermark_id: str) -> None:
        self.watermark_id = watermark_id
        super().__init__(f"watermark {watermark_id!r} does not exist")
