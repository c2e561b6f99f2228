"""Collections snapshot: users, events and errors.

``events`` stores every incoming message (``type``, the raw payload, extra
metadata and an optional attached file); ``errors`` stores failures while
handling one.  Both are readable and creatable by anyone and only
editable by admins.
"""

from collection_migrate import Snapshot, import_collections

SEQUENCE = 1702695322

_TEXT = {"min": None, "max": None, "pattern": ""}

SNAPSHOT = [
    {
        "id": "_pb_users_auth_",
        "created": "2023-12-15 19:21:15.350Z",
        "updated": "2023-12-15 19:21:15.353Z",
        "name": "users",
        "type": "auth",
        "system": False,
        "schema": [
            {
                "system": False,
                "id": "users_name",
                "name": "name",
                "type": "text",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": dict(_TEXT),
            },
            {
                "system": False,
                "id": "users_avatar",
                "name": "avatar",
                "type": "file",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": {
                    "mimeTypes": [
                        "image/jpeg",
                        "image/png",
                        "image/svg+xml",
                        "image/gif",
                        "image/webp",
                    ],
                    "thumbs": None,
                    "maxSelect": 1,
                    "maxSize": 5242880,
                    "protected": False,
                },
            },
        ],
        "indexes": [],
        "listRule": "id = @request.auth.id",
        "viewRule": "id = @request.auth.id",
        "createRule": "",
        "updateRule": "id = @request.auth.id",
        "deleteRule": "id = @request.auth.id",
        "options": {
            "allowEmailAuth": True,
            "allowOAuth2Auth": True,
            "allowUsernameAuth": True,
            "exceptEmailDomains": None,
            "manageRule": None,
            "minPasswordLength": 8,
            "onlyEmailDomains": None,
            "onlyVerified": False,
            "requireEmail": False,
        },
    },
    {
        "id": "zt30my8u19auasj",
        "created": "2023-12-15 19:34:11.722Z",
        "updated": "2023-12-15 22:06:39.993Z",
        "name": "events",
        "type": "base",
        "system": False,
        "schema": [
            {
                "system": False,
                "id": "dr6z2fsg",
                "name": "type",
                "type": "text",
                "required": True,
                "presentable": False,
                "unique": False,
                "options": dict(_TEXT),
            },
            {
                "system": False,
                "id": "dxtiuyee",
                "name": "raw",
                "type": "json",
                "required": True,
                "presentable": False,
                "unique": False,
                "options": {"maxSize": 2000000},
            },
            {
                "system": False,
                "id": "xw2asjzn",
                "name": "extra",
                "type": "json",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": {"maxSize": 2000000},
            },
            {
                "system": False,
                "id": "csfrcxg5",
                "name": "file",
                "type": "file",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": {
                    "mimeTypes": [],
                    "thumbs": ["300x300"],
                    "maxSelect": 1,
                    "maxSize": 52428800,
                    "protected": False,
                },
            },
        ],
        "indexes": [],
        "listRule": "",
        "viewRule": "",
        "createRule": "",
        "updateRule": None,
        "deleteRule": None,
        "options": {},
    },
    {
        "id": "4t27n14g48t9t18",
        "created": "2023-12-15 21:35:37.316Z",
        "updated": "2023-12-15 21:35:37.316Z",
        "name": "errors",
        "type": "base",
        "system": False,
        "schema": [
            {
                "system": False,
                "id": "ot2y1phw",
                "name": "type",
                "type": "text",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": dict(_TEXT),
            },
            {
                "system": False,
                "id": "8az86d19",
                "name": "error",
                "type": "text",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": dict(_TEXT),
            },
            {
                "system": False,
                "id": "lmukfkoy",
                "name": "raw",
                "type": "json",
                "required": False,
                "presentable": False,
                "unique": False,
                "options": {"maxSize": 2000000},
            },
        ],
        "indexes": [],
        "listRule": "",
        "viewRule": "",
        "createRule": "",
        "updateRule": None,
        "deleteRule": None,
        "options": {},
    },
]

# First migration: reverting it leaves no collections
PREVIOUS = []


async def up(uow):
    await import_collections(uow, Snapshot.from_list(SNAPSHOT), delete_missing=True)


async def down(uow):
    await import_collections(uow, Snapshot.from_list(PREVIOUS), delete_missing=True)
