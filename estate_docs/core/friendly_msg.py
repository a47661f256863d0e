FRIENDLY_MESSAGES = {
    "ConnectionError": "A document service is unreachable right now. Please try again later.",
    "TimeoutError": "The document service took too long to answer. Please try again later.",
    "DatabaseError": "Temporary issue while saving the document. Please try again shortly.",
    "IntegrityError": "The document changed while you were working on it. Refresh and retry.",
    "ValueError": "Invalid document data received. Please check your input and try again.",
    "KeyError": "Some required document information is missing.",
}


def get_friendly_message(error: Exception) -> str:
    for key, msg in FRIENDLY_MESSAGES.items():
        if key.lower() in type(error).__name__.lower():
            return msg
    return "Something went wrong on our end. Please try again."
