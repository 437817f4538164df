import kubeless


def say_hello(event, context):
    """
    Greet the caller.

    - event.data: request body for POST requests, None otherwise
    - context.function_name: the name this function was selected by
    """
    if event.data is not None:
        return f"Hello, {event.data.decode(errors='replace')}"
    return "Hello"


def say_goodbye(event, context):
    if event.data is not None:
        return f"Goodbye, {event.data.decode(errors='replace')}"
    return "Goodbye"


def echo_or_panic(event, context):
    # fails for any request without a body
    return event.data.decode(errors="replace")


if __name__ == "__main__":
    kubeless.start(say_hello, say_goodbye, echo_or_panic)
