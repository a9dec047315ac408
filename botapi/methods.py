"""Static table of remote Bot API methods exposed on :class:`~botapi.client.BotClient`.

Every entry becomes one coroutine method on the client, named in snake_case
(``sendMessage`` → ``send_message``), that forwards its parameters unchanged
to the transport.  No per-method validation is done here; the remote API is
the schema authority.
"""

from __future__ import annotations

import re

REMOTE_METHODS: tuple[str, ...] = (
    # Getting updates
    "getUpdates",
    "setWebhook",
    "deleteWebhook",
    "getWebhookInfo",
    # Available methods
    "getMe",
    "logOut",
    "close",
    "sendMessage",
    "forwardMessage",
    "copyMessage",
    "sendPhoto",
    "sendAudio",
    "sendDocument",
    "sendVideo",
    "sendAnimation",
    "sendVoice",
    "sendVideoNote",
    "sendMediaGroup",
    "sendLocation",
    "editMessageLiveLocation",
    "stopMessageLiveLocation",
    "sendVenue",
    "sendContact",
    "sendPoll",
    "sendDice",
    "sendChatAction",
    "getUserProfilePhotos",
    "getFile",
    "kickChatMember",
    "unbanChatMember",
    "restrictChatMember",
    "promoteChatMember",
    "setChatAdministratorCustomTitle",
    "setChatPermissions",
    "exportChatInviteLink",
    "setChatPhoto",
    "deleteChatPhoto",
    "setChatTitle",
    "setChatDescription",
    "pinChatMessage",
    "unpinChatMessage",
    "unpinAllChatMessages",
    "leaveChat",
    "getChat",
    "getChatAdministrators",
    "getChatMembersCount",
    "getChatMember",
    "setChatStickerSet",
    "deleteChatStickerSet",
    "answerCallbackQuery",
    "setMyCommands",
    "getMyCommands",
    # Updating messages
    "editMessageText",
    "editMessageCaption",
    "editMessageMedia",
    "editMessageReplyMarkup",
    "stopPoll",
    "deleteMessage",
    # Stickers
    "sendSticker",
    "getStickerSet",
    "uploadStickerFile",
    "createNewStickerSet",
    "addStickerToSet",
    "setStickerPositionInSet",
    "deleteStickerFromSet",
    "setStickerSetThumb",
    # Inline mode
    "answerInlineQuery",
    # Payments
    "sendInvoice",
    "answerShippingQuery",
    "answerPreCheckoutQuery",
    # Passport
    "setPassportDataErrors",
    # Games
    "sendGame",
    "setGameScore",
    "getGameHighScores",
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(method_name: str) -> str:
    """``getChatMembersCount`` → ``get_chat_members_count``."""
    return _CAMEL_BOUNDARY.sub("_", method_name).lower()


# snake_case attribute name → remote method name
METHOD_ATTRIBUTES: dict[str, str] = {to_snake_case(name): name for name in REMOTE_METHODS}
