# Constants.py
# Description: Constants for the application
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Conversation Defaults ---
DEFAULT_CONVERSATION_TITLE = "New Chat"
COPY_TITLE_SUFFIX = " (Copy)"
TITLE_MAX_CHARS = 40
TITLE_ELLIPSIS = "..."
NO_MESSAGES_PREVIEW = "No messages yet"

# --- Sidebar Date Groups ---
GROUP_TODAY = "Today"
GROUP_YESTERDAY = "Yesterday"
GROUP_THIS_WEEK = "This Week"
GROUP_OLDER = "Older"
THIS_WEEK_DAYS = 7

# --- Model Catalogue (OpenRouter ids) ---
# Fallback used when the /models endpoint cannot be reached. The first entry is the
# default model for new conversations unless the user picked another one.
AVAILABLE_MODELS = [
    {"model_id": "anthropic/claude-opus-4.6", "display_name": "Claude Opus 4.6", "provider": "Anthropic", "max_tokens": 200000, "streaming": True},
    {"model_id": "anthropic/claude-opus-4.5", "display_name": "Claude Opus 4.5", "provider": "Anthropic", "max_tokens": 200000, "streaming": True},
    {"model_id": "anthropic/claude-sonnet-4.5", "display_name": "Claude Sonnet 4.5", "provider": "Anthropic", "max_tokens": 200000, "streaming": True},
    {"model_id": "deepseek/deepseek-v3.2", "display_name": "DeepSeek V3.2", "provider": "DeepSeek", "max_tokens": 128000, "streaming": True},
    {"model_id": "google/gemini-2.5-pro", "display_name": "Gemini 2.5 Pro", "provider": "Google", "max_tokens": 1000000, "streaming": True},
    {"model_id": "google/gemini-2.5-flash", "display_name": "Gemini 2.5 Flash", "provider": "Google", "max_tokens": 1000000, "streaming": True},
    {"model_id": "openai/gpt-5.2", "display_name": "GPT-5.2", "provider": "OpenAI", "max_tokens": 400000, "streaming": True},
    {"model_id": "openai/gpt-4o-mini", "display_name": "GPT-4o mini", "provider": "OpenAI", "max_tokens": 128000, "streaming": True},
    {"model_id": "meta-llama/llama-4-maverick", "display_name": "Llama 4 Maverick", "provider": "Meta", "max_tokens": 1000000, "streaming": True},
]
DEFAULT_MODEL_ID = AVAILABLE_MODELS[0]["model_id"]

# --- API Paths ---
CONVERSATIONS_PATH = "/conversations"
CHAT_PATH = "/chat"
MODELS_PATH = "/models"

# --- Server Error Messages shown in the chat log ---
ERROR_TEXT_NETWORK = "Unable to connect to the server. Please check your internet connection."
ERROR_TEXT_UNAUTHORIZED = "Your session has expired. Please sign in again."
ERROR_TEXT_NOT_FOUND = "This conversation could not be found on the server."
ERROR_TEXT_VALIDATION = "The request was rejected by the server."
ERROR_TEXT_SERVER = "The model could not generate a response. Please try again."

#
# End of Constants.py
########################################################################################################################
