# Overview: Socket.IO event names shared by the server handlers and the device client.

# Inbound (device -> server)
ANNOUNCE_LEADER = "announce-leader"
REQUEST_STATE = "request-state"
STATE_SNAPSHOT = "state-snapshot"
EDIT = "edit"

# Outbound (server -> device)
STATE_BROADCAST = "state-broadcast"
SALE_FINALIZED = "sale-finalized"
REQUEST_INITIAL_STATE = "request-initial-state"
SHARE_YOUR_STATE = "share-your-state"
EDIT_REJECTED = "edit-rejected"
