"""
Permission constants and role mappings.

Permissions are static: a user's permissions are fully determined by their
role. Head-office roles hold every permission; branch roles hold a subset
and only ever see their own branch (see services/visibility.py).
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    DASHBOARD = "DASHBOARD"
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    SUPPLIERS = "SUPPLIERS"
    TREASURY = "TREASURY"
    STAFF = "STAFF"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "VIEW_DASHBOARD",
        "View Dashboard",
        "View cashflow, inventory value and profit estimates",
        PermissionCategory.DASHBOARD
    ),

    # INVENTORY PERMISSIONS
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View products and stock levels",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit, archive products and adjust stock",
        PermissionCategory.INVENTORY
    ),

    # SALES PERMISSIONS
    (
        "CREATE_SALE",
        "Create Sale",
        "Create sales invoices and sales returns",
        PermissionCategory.SALES
    ),
    (
        "DELETE_SALE",
        "Delete Sale",
        "Archive sales invoices (restores stock)",
        PermissionCategory.SALES
    ),
    (
        "MANAGE_EXPENSES",
        "Manage Expenses",
        "Record branch expenses",
        PermissionCategory.SALES
    ),

    # SUPPLIER PERMISSIONS
    (
        "VIEW_SUPPLIERS",
        "View Suppliers",
        "View suppliers, purchases and statements",
        PermissionCategory.SUPPLIERS
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create and archive suppliers",
        PermissionCategory.SUPPLIERS
    ),
    (
        "RECORD_PURCHASES",
        "Record Purchases",
        "Record supplier purchases and purchase returns",
        PermissionCategory.SUPPLIERS
    ),
    (
        "RECORD_SUPPLIER_PAYMENTS",
        "Record Supplier Payments",
        "Pay down supplier debt",
        PermissionCategory.SUPPLIERS
    ),

    # TREASURY PERMISSIONS
    (
        "VIEW_TREASURY",
        "View Treasury",
        "View treasury balance and movements",
        PermissionCategory.TREASURY
    ),
    (
        "MANAGE_TREASURY",
        "Manage Treasury",
        "Record manual deposits and withdrawals",
        PermissionCategory.TREASURY
    ),

    # STAFF PERMISSIONS
    (
        "MANAGE_STAFF",
        "Manage Staff",
        "Create, transfer and archive staff accounts",
        PermissionCategory.STAFF
    ),
    (
        "PAY_STAFF",
        "Pay Staff",
        "Record salaries, bonuses, advances and deductions",
        PermissionCategory.STAFF
    ),
    (
        "USE_CORRESPONDENCE",
        "Use Correspondence",
        "Send messages and submit leave requests",
        PermissionCategory.STAFF
    ),

    # SYSTEM PERMISSIONS
    (
        "MANAGE_BRANCHES",
        "Manage Branches",
        "Create, edit, close and archive branches",
        PermissionCategory.SYSTEM
    ),
    (
        "VIEW_ACTIVITY",
        "View Activity",
        "View the activity feed and audit events",
        PermissionCategory.SYSTEM
    ),
]


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

_ALL = [perm[0] for perm in PERMISSION_DEFINITIONS]

DEFAULT_ROLE_PERMISSIONS = {
    # Head office: everything
    "admin": list(_ALL),
    "general_manager": list(_ALL),
    "it_support": list(_ALL),

    "branch_manager": [
        code for code in _ALL if code not in ("MANAGE_BRANCHES", "MANAGE_STAFF")
    ],

    "supervisor": [
        "VIEW_DASHBOARD",
        "VIEW_PRODUCTS",
        "CREATE_SALE",
        "DELETE_SALE",
        "MANAGE_EXPENSES",
        "VIEW_SUPPLIERS",
        "RECORD_PURCHASES",
        "VIEW_TREASURY",
        "VIEW_ACTIVITY",
        "USE_CORRESPONDENCE",
    ],

    "employee": [
        "VIEW_PRODUCTS",
        "CREATE_SALE",      # Primary job: ring up sales
        "USE_CORRESPONDENCE",
    ],
}


# =============================================================================
# PERMISSION HELPERS
# =============================================================================

def get_all_permission_codes():
    """Get list of all permission codes."""
    return list(_ALL)


def get_permissions_by_category(category):
    """Get all permissions in a category."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None
