"""Static English -> Thai seed used to fill missing word translations."""

THAI_SEED: dict[str, str] = {
    "vegetable": "ผัก",
    "very": "มาก",
    "west": "ทิศตะวันตก",
    "apple": "แอปเปิล",
    "egg": "ไข่",
    "market": "ตลาด",
    "rice": "ข้าว",
    "chicken": "ไก่",
    "fish": "ปลา",
    "bread": "ขนมปัง",
    "water": "น้ำ",
    "milk": "นม",
    "coffee": "กาแฟ",
    "tea": "ชา",
    "hello": "สวัสดี",
    "goodbye": "ลาก่อน",
    "please": "กรุณา",
    "thank you": "ขอบคุณ",
    "bathroom": "ห้องน้ำ",
    "money": "เงิน",
    "train": "รถไฟ",
    "bus": "รถบัส",
    "airport": "สนามบิน",
    "hotel": "โรงแรม",
    "family": "ครอบครัว",
    "work": "งาน",
    "shop": "ร้านค้า",
    "buy": "ซื้อ",
    "sell": "ขาย",
    "price": "ราคา",
}

BACKFILL_KINDS = ("word", "phrase")


def lookup(term: str) -> str | None:
    return THAI_SEED.get(" ".join((term or "").lower().split()))


def backfill_translations(items) -> int:
    """Fill blank translations on word/phrase items in place.

    Items may be dicts or objects with kind/term/translation attributes.
    Returns the number of items filled.
    """
    filled = 0
    for item in items:
        if isinstance(item, dict):
            kind, term, translation = item.get("kind"), item.get("term"), item.get("translation")
        else:
            kind, term, translation = item.kind, item.term, item.translation
        if kind not in BACKFILL_KINDS or (translation or "").strip():
            continue
        thai = lookup(term)
        if not thai:
            continue
        if isinstance(item, dict):
            item["translation"] = thai
        else:
            item.translation = thai
        filled += 1
    return filled
