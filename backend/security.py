from fastapi import Header

from config import DEMO_USER_ID

# Authentication is not wired up yet: every constructor request acts as the
# configured demo user unless a gateway forwards X-User-Id.
def current_user_id(x_user_id: str = Header(default="")) -> str:
    return x_user_id or DEMO_USER_ID
