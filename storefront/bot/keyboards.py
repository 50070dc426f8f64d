from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from storefront.constants import CATEGORIES


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/help"), KeyboardButton(text="/orders")],
            [KeyboardButton(text="/products"), KeyboardButton(text="/product_add")],
            [KeyboardButton(text="/backup"), KeyboardButton(text="/ping")],
        ],
        resize_keyboard=True,
    )


def categories_kb() -> ReplyKeyboardMarkup:
    rows = [[KeyboardButton(text=c)] for c in CATEGORIES]
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)
