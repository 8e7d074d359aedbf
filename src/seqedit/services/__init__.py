"""Session services: page store, collapse state, navigation and the editor session."""
