"""CSS styles for the TUI.

Hides layout and styling decisions from the application logic.
Uses Textual CSS features: nesting, pseudo-classes, variables.
"""

APP_CSS = """
/* Main layout: sidebar | chat (+ debug log), status and input below */
Screen {
    layout: vertical;
    background: $background;
}

#main {
    height: 1fr;
}

/* Conversation sidebar */
#sidebar {
    width: 34;
    height: 100%;
    background: $surface;
    border: round $border;
    border-title-color: $secondary;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;

    &:focus {
        border: round $secondary;
    }

    ConversationItem {
        height: auto;
        padding: 0 1;
        background: $surface;

        &.-highlight {
            background: $secondary 25%;
        }
    }

    .thread-preview {
        width: 100%;
        color: $foreground;
    }

    .thread-meta {
        width: 100%;
        color: $text-muted;
    }
}

#center {
    width: 1fr;
    height: 100%;
}

/* Chat history */
#chat-history {
    height: 1fr;
    background: $panel;
    border: round $primary 60%;
    border-title-color: $primary;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;

    &:focus {
        border: round $primary;
    }
}

#welcome {
    width: 100%;
    padding: 2 4;
    color: $text-muted;
    text-align: center;
}

.chat-message {
    height: auto;
    margin: 1 0 0 0;
    padding: 0 1;

    .message-header {
        text-style: bold;
    }

    .message-content {
        height: auto;
        margin: 0;
        padding: 0;
        background: transparent;
    }

    .message-footer {
        color: $text-muted;
        text-style: italic;
    }

    .thinking {
        height: auto;
        margin: 0 0 1 0;
        padding: 0;
        border: none;
        background: $surface;
        color: $text-muted;
    }

    .thinking-content {
        color: $text-muted;
        text-style: italic;
    }
}

.user-message {
    border-left: thick $accent;

    .message-header {
        color: $accent;
    }
}

.assistant-message {
    border-left: thick $primary;

    .message-header {
        color: $primary;
    }
}

/* Debug log */
#debug-panel {
    height: 12;
    background: $surface;
    border: round $warning 50%;
    border-title-color: $warning;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
}

/* Status banner */
#status-banner {
    height: 1;
    padding: 0 2;
    background: $primary 20%;
    color: $foreground;

    &.-loading {
        text-style: bold;
    }

    &.-error {
        background: $error 30%;
        color: $error;
    }
}

/* Input bar */
#chat-input-bar {
    height: 6;
    padding: 0 1;
    background: $surface;

    #chat-input {
        width: 1fr;
        height: 100%;
        border: round $border;

        &:focus {
            border: round $accent;
        }
    }

    #send-btn {
        width: 10;
        height: 100%;
        margin-left: 1;
    }
}

Toast {
    background: $panel;
    border-left: tall $primary;
}
"""
