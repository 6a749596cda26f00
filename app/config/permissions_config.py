"""
Permissions Configuration
Defines the marketplace permission matrix. Every profile carries a user_type
(buyer, seller, admin); each user type is granted a fixed set of
"resource:action" permissions that routes check through require_permission.
"""

# Define modules and their actions
MODULES = {
    "profiles": {
        "resource": "profiles",
        "actions": ["read", "update", "list", "verify"],
        "description": "User profile management"
    },
    "products": {
        "resource": "products",
        "actions": ["read", "create", "update", "moderate", "repost"],
        "description": "Catalog product management"
    },
    "orders": {
        "resource": "orders",
        "actions": ["read", "create", "update", "manage", "import"],
        "description": "Order creation and tracking"
    },
    "price_offers": {
        "resource": "price_offers",
        "actions": ["read", "create", "respond", "manage"],
        "description": "Price offer negotiation"
    },
    "media": {
        "resource": "media",
        "actions": ["upload"],
        "description": "Image and video uploads"
    },
    "notifications": {
        "resource": "notifications",
        "actions": ["read"],
        "description": "In-app notifications"
    },
    "telegram": {
        "resource": "telegram",
        "actions": ["message"],
        "description": "Telegram bot messaging"
    }
}

# Additional descriptions for non-CRUD actions
MODULE_SPECIFIC_PERMISSIONS = {
    "profiles": {
        "list": "List all user profiles",
        "verify": "Change user verification status"
    },
    "products": {
        "moderate": "Publish, archive or mark products as sold",
        "repost": "Re-send a lot to the Telegram product group"
    },
    "orders": {
        "manage": "Change any order status and resend notifications",
        "import": "Create orders from Telegram order text"
    },
    "price_offers": {
        "respond": "Accept or reject offers on own products",
        "manage": "View all offers"
    },
    "media": {
        "upload": "Upload images and videos to the CDN"
    },
    "telegram": {
        "message": "Send personal and bulk Telegram messages to users"
    }
}

# Actions granted per user type; admin gets every action
USER_TYPE_ACTIONS = {
    "buyer": {
        "profiles": ["read", "update"],
        "products": ["read"],
        "orders": ["read", "create", "update"],
        "price_offers": ["read", "create"],
        "media": ["upload"],
        "notifications": ["read"],
    },
    "seller": {
        "profiles": ["read", "update"],
        "products": ["read", "create", "update", "repost"],
        "orders": ["read", "create", "update"],
        "price_offers": ["read", "create", "respond"],
        "media": ["upload"],
        "notifications": ["read"],
    },
}


def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the permissions of each user type
    Format: {
        "permissions": [
            {"name": "orders:create", "resource": "orders", "action": "create", "description": "..."},
            ...
        ],
        "user_types": {
            "buyer": ["orders:create", "orders:read", ...],
            ...
        }
    }
    """
    permissions = []

    for module_name, module_config in MODULES.items():
        resource = module_config["resource"]

        for action in module_config["actions"]:
            description = f"{action.capitalize()} {resource}"
            if module_name in MODULE_SPECIFIC_PERMISSIONS and action in MODULE_SPECIFIC_PERMISSIONS[module_name]:
                description = MODULE_SPECIFIC_PERMISSIONS[module_name][action]

            permissions.append({
                "name": f"{resource}:{action}",
                "resource": resource,
                "action": action,
                "description": description
            })

    user_types = {"admin": sorted(p["name"] for p in permissions)}
    for user_type, grants in USER_TYPE_ACTIONS.items():
        names = []
        for module_name, actions in grants.items():
            resource = MODULES[module_name]["resource"]
            names.extend(f"{resource}:{action}" for action in actions)
        user_types[user_type] = sorted(names)

    return {
        "permissions": permissions,
        "user_types": user_types
    }


PERMISSION_MATRIX = get_permission_matrix()


def get_user_type_permissions(user_type: str) -> list:
    """Permission names granted to a user type; unknown types get nothing."""
    return PERMISSION_MATRIX["user_types"].get(user_type, [])
