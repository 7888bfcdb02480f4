REDIS_ROOM_CHANNEL = "room:channel:{room_id}"  # pub/sub channel relaying one room's events
REDIS_ROOM_CHANNEL_PATTERN = "room:channel:*"  # every room, for the relay listener

# Messages on a room channel are JSON: {"event": "<name>", "data": <payload>}
