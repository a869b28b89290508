"""Microsoft Graph API field names used by the drive client and item shaping."""

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_FOLDER = "folder"
FIELD_FILE = "file"
FIELD_SIZE = "size"
FIELD_WEB_URL = "webUrl"
FIELD_LAST_MODIFIED = "lastModifiedDateTime"
FIELD_MIME_TYPE = "mimeType"
FIELD_CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"

# Conflict behaviours accepted by Graph on create/upload
CONFLICT_RENAME = "rename"
CONFLICT_REPLACE = "replace"
