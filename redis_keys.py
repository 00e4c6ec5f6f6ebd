REDIS_META_KEY = "room:meta:{slug}" # room id - hash
REDIS_MESSAGES_KEY = "room:messages:{slug}" # room id - list of JSON messages
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel name

# **`room:meta:{id}` hash fields**
# - `connected` = json array of membership tokens, at most ROOM_CAPACITY long
# - `created_at` = epoch milliseconds
#
# TTL is set on `room:meta:{id}` at creation and never extended.
# `room:messages:{id}` is re-expired to the meta key's PTTL on every append.

EVENT_MESSAGE = "chat.message"
EVENT_DESTROY = "chat.destroy"
