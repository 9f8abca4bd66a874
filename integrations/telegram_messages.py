"""
Telegram message templates for upload notifications, in English and Spanish.

Usage:
    from integrations.telegram_messages import get_message

    message = get_message("price_list_uploaded",
        supplier="Acme Tiles",
        filename="prices.xlsx",
        items=120,
        price_list_id="pl-1"
    )
"""

from config.settings import settings

MESSAGES = {
    "en": {
        "price_list_uploaded": """✅ *Price list imported*

Supplier: {supplier}
File: `{filename}`
Items: {items}
Price list: `{price_list_id}`""",

        "upload_needs_review": """⚠️ *Price list needs review*

Supplier: {supplier}
File: `{filename}`
Reason: {reason}""",

        "upload_awaiting_approval": """🕒 *Price list awaiting approval*

Supplier: {supplier}
File: `{filename}`
Reason: {reason}""",

        "upload_failed": """❌ *Price list upload failed*

Supplier: {supplier}
File: `{filename}`
Error: {error}
Items committed: {items}""",
    },
    "es": {
        "price_list_uploaded": """✅ *Lista de precios importada*

Proveedor: {supplier}
Archivo: `{filename}`
Artículos: {items}
Lista: `{price_list_id}`""",

        "upload_needs_review": """⚠️ *Lista de precios requiere revisión*

Proveedor: {supplier}
Archivo: `{filename}`
Motivo: {reason}""",

        "upload_awaiting_approval": """🕒 *Lista de precios pendiente de aprobación*

Proveedor: {supplier}
Archivo: `{filename}`
Motivo: {reason}""",

        "upload_failed": """❌ *Error al cargar lista de precios*

Proveedor: {supplier}
Archivo: `{filename}`
Error: {error}
Artículos guardados: {items}""",
    },
}


def get_lang() -> str:
    """Get current language setting."""
    return settings.telegram_language


def get_message(key: str, **kwargs) -> str:
    """
    Get translated message template and format with kwargs.

    Args:
        key: Message template key
        **kwargs: Format arguments for the template

    Returns:
        Formatted message string in the configured language
    """
    lang_messages = MESSAGES.get(get_lang(), MESSAGES["en"])
    template = lang_messages.get(key, MESSAGES["en"].get(key, key))
    try:
        return template.format(**kwargs)
    except KeyError:
        # Missing placeholder values leave the template unformatted
        return template
