"""
Bengali user-facing messages.

Log lines stay in English; anything shown to the teacher comes from here.
"""

from khata.utils.numerals import to_bengali_number


NO_IMAGES = "কমপক্ষে একটি ছবি আপলোড করুন"
IMAGE_READ_FAILED = "ছবি পড়তে সমস্যা হয়েছে"
FILE_TOO_LARGE = "ফাইল সাইজ বড় (সর্বোচ্চ {limit} MB)"
INVALID_FILE_TYPE = "ফাইল টাইপ সমর্থিত নয়"

EXTRACTION_FAILED = "প্রসেসিং এ সমস্যা হয়েছে। আবার চেষ্টা করুন।"
RECOVERY_FAILED = "AI থেকে ডেটা পার্স করতে সমস্যা হয়েছে"
NOTHING_FOUND = "ছবি থেকে কোন তথ্য পাওয়া যায়নি। স্পষ্ট ছবি তুলুন।"
SERVICE_UNAVAILABLE = "AI সেবা এই মুহূর্তে উপলব্ধ নয়"
TIMEOUT = "সময় শেষ হয়ে গেছে, আবার চেষ্টা করুন"
RATE_LIMIT = "অনেক বেশি অনুরোধ। ১ মিনিট পরে চেষ্টা করুন।"

NAME_REQUIRED = "নাম দেওয়া হয়নি"
ROLL_REQUIRED = "রোল নম্বর দেওয়া হয়নি"
MARKS_NOT_NUMBER = "নম্বর একটি সংখ্যা হতে হবে"
NO_DATA = "কোন তথ্য পাওয়া যায়নি"
AMBIGUOUS_ROSTER = "একই রোল নম্বরে একাধিক শিক্ষার্থী আছে"
STUDENT_ADD_FAILED = "ছাত্র/ছাত্রী যোগ করতে ব্যর্থ হয়েছে"
SAVE_FAILED = "ডেটা সেভ করতে ব্যর্থ হয়েছে"


def too_many_images(limit: int) -> str:
    return f"সর্বোচ্চ {to_bengali_number(limit)}টি ছবি আপলোড করতে পারবেন"


def marks_out_of_range(maximum: float) -> str:
    return f"নম্বর ০-{to_bengali_number(maximum)} এর মধ্যে হতে হবে"


def duplicate_roll(roll: str) -> str:
    return f"রোল নম্বর {roll} একাধিকবার আছে"


def duplicate_roll_across_images(roll: str) -> str:
    return f"রোল {roll} একাধিক ছবিতে পাওয়া গেছে"


def placeholder_roll(name: str, roll: str) -> str:
    return f"{name}: রোল নম্বর পাওয়া যায়নি, {roll} ধরা হয়েছে"


def rows_with_errors(count: int) -> str:
    return f"{to_bengali_number(count)} টি সারিতে ত্রুটি আছে। সংশোধন করুন।"


def row_problem(row_number: int, problem: str) -> str:
    return f"সারি {to_bengali_number(row_number)}: {problem}"


def image_failed(image_number: int, reason: str) -> str:
    return f"ছবি {to_bengali_number(image_number)}: {reason}"


def image_empty(image_number: int) -> str:
    return f"ছবি {to_bengali_number(image_number)}: কোন বৈধ তথ্য পাওয়া যায়নি"
