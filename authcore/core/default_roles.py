"""Built-in role table.

Seeded as system roles at bootstrap, and consulted by the permission
evaluator when a user references a role name with no stored Role row.
"""

DEFAULT_ROLES: dict[str, dict] = {
    "customer": {
        "display_name": "Customer",
        "description": "Regular customer with shopping access",
        "priority": 10,
        "permissions": [],
    },
    "customer_support": {
        "display_name": "Customer Support",
        "description": "Can manage orders and assist customers",
        "priority": 30,
        "permissions": [
            "users.read",
            "orders.read", "orders.update", "orders.cancel",
            "products.read",
            "reviews.read",
        ],
    },
    "content_moderator": {
        "display_name": "Content Moderator",
        "description": "Can moderate reviews and manage content",
        "priority": 30,
        "permissions": [
            "reviews.*",
            "content.*",
            "products.read", "products.update",
            "categories.read",
        ],
    },
    "inventory_manager": {
        "display_name": "Inventory Manager",
        "description": "Can manage products and inventory",
        "priority": 50,
        "permissions": [
            "products.read", "products.create", "products.update",
            "inventory.*",
            "categories.read", "categories.create", "categories.update",
            "orders.read",
            "analytics.read",
        ],
    },
    "marketing_manager": {
        "display_name": "Marketing Manager",
        "description": "Can manage campaigns and storefront content",
        "priority": 50,
        "permissions": [
            "products.read", "products.update",
            "marketing.*",
            "content.*",
            "categories.read",
            "analytics.read",
        ],
    },
    "sales_manager": {
        "display_name": "Sales Manager",
        "description": "Can view analytics and manage sales",
        "priority": 50,
        "permissions": [
            "orders.*",
            "analytics.*",
            "products.read",
            "users.read",
        ],
    },
    "admin": {
        "display_name": "Administrator",
        "description": "Full administrative access except system settings and roles",
        "priority": 80,
        "permissions": [
            "products.*", "categories.*", "orders.*", "content.*",
            "reviews.*", "inventory.*", "marketing.*", "analytics.*",
            "users.read", "users.create", "users.update", "users.delete",
            "settings.read",
            "roles.read",
            "audit.read", "audit.export", "audit.review",
        ],
    },
    "super_admin": {
        "display_name": "Super Administrator",
        "description": "Complete system access",
        "priority": 100,
        "permissions": ["*"],
    },
}

DEFAULT_USER_ROLE = "customer"
