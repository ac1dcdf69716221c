"""Pydantic models for user profile and address data."""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Address(BaseModel):
    """A saved address on the user's profile."""
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    type: str = "Home"
    name: str = ""
    phone: str = ""
    street: str = Field(default="", validation_alias=AliasChoices("street", "line1"))
    line2: str = ""
    city: str = ""
    state: str = ""
    pincode: str = Field(default="", validation_alias=AliasChoices("pincode", "zip", "zipCode"))
    country: str = "India"
    is_default: bool = Field(default=False, validation_alias=AliasChoices("isDefault", "is_default"))

    def to_backend(self) -> dict:
        """Body for POST/PUT /auth/address."""
        return {
            "type": self.type,
            "name": self.name,
            "phone": self.phone,
            "street": self.street,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "country": self.country,
            "isDefault": self.is_default,
        }


class ShippingAddress(BaseModel):
    """Inline shipping address in the backend's field naming."""
    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    phone: str
    street: str
    city: str
    state: str
    pincode: str
    country: str = "India"


class UserProfile(BaseModel):
    """Authenticated user's profile as returned by GET /auth/profile."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    email: str = ""
    phone: str = Field(default="", validation_alias=AliasChoices("whatsappNumber", "phone"))
    addresses: list[Address] = Field(default_factory=list)

    @property
    def first_name(self) -> str:
        parts = self.name.split(" ")
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        return " ".join(self.name.split(" ")[1:])
