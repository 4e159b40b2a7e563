"""Named queries the workflow issues through ILookupPort.

Names are the query identifiers registered on the automation host. The
parked roster is also served by PostgresParkingLedger when a database is
configured.
"""


class Queries:
    """Catalogue of named queries and their parameter keys."""

    # Directory
    DIRECTORY_USER = "App_Cisco_Script_GetADUser"  # {"sAMAccountName": ...}

    # Call manager
    CALL_MANAGER_USER = "App_Cisco_Script_GetCUCMUser"  # {"UserId": ...}
    USER_DEVICES = "App_Cisco_Script_GetCUCMUserAssociatedDevices"  # {"UserId": ...}
    LINE = "App_Cisco_Script_GetCUCMPhoneLine"  # {"UUID": ...}
    PHONE = "App_Cisco_Script_GetCUCMPhone"  # {"UUID": ...}

    # Site configuration
    BUILDING = "App_Cisco_Script_GetBuilding"  # {"BuildingID": ...}
    PHONE_TEMPLATES = "App_Cisco_Script_GetPhoneTemplates"  # {"BuildingID": ...}

    # Voicemail
    VOICEMAIL_USER = "App_Cisco_Script_GetUnityUser"  # {"Alias": ...}
    VOICEMAIL_USER_BY_EXTENSION = "App_Cisco_Script_GetUnityUserByExtension"  # {"DtmfAccessId": ...}

    # Internal audit
    PARKED_MAILBOXES = "App_Cisco_Script_GetParkedMailboxes"  # {}
