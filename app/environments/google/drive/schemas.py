"""
Google Drive Schemas - Data structures for Drive v3 responses.

Reference: https://developers.google.com/drive/api/reference/rest/v3
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


class DriveUser(BaseModel):
    """An owner or sharing user as reported by Drive."""
    model_config = ConfigDict(populate_by_name=True)

    email_address: Optional[str] = Field(None, alias="emailAddress")
    display_name: Optional[str] = Field(None, alias="displayName")
    me: bool = False


class DriveFile(BaseModel):
    """
    File metadata returned by files.get / files.list.

    Drive reports `size` as a string and omits it for Google Docs
    native formats; it is exposed here as an optional int.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    mime_type: Optional[str] = Field(None, alias="mimeType")
    size: Optional[int] = None
    owners: List[DriveUser] = Field(default_factory=list)
    created_time: Optional[datetime] = Field(None, alias="createdTime")
    modified_time: Optional[datetime] = Field(None, alias="modifiedTime")
    web_view_link: Optional[str] = Field(None, alias="webViewLink")

    def is_owned_by_me(self) -> bool:
        """True when the authenticated user is among the file's owners."""
        return any(owner.me for owner in self.owners)


class DriveFileList(BaseModel):
    """One page of files.list results."""
    model_config = ConfigDict(populate_by_name=True)

    files: List[DriveFile] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(None, alias="nextPageToken")


class DrivePermission(BaseModel):
    """A permission grant on a file."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: Optional[str] = None
    role: Optional[str] = None
    email_address: Optional[str] = Field(None, alias="emailAddress")
    display_name: Optional[str] = Field(None, alias="displayName")

    def is_user(self, email: str) -> bool:
        """True when this grant belongs to the user account with this email."""
        return (
            self.type == "user"
            and self.email_address is not None
            and self.email_address.lower() == email.lower()
        )
