from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents an authenticated user from Supabase.

    Roles are read from the token's ``app_metadata`` claim, which only the
    service role can write.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    app_metadata: dict = Field(default_factory=dict)

    @property
    def roles(self) -> list[str]:
        roles = self.app_metadata.get("roles") or []
        single = self.app_metadata.get("role")
        if single and single not in roles:
            roles = [*roles, single]
        return list(roles)

    @property
    def is_admin(self) -> bool:
        return self.role == "service_role" or "admin" in self.roles
