"""
Services package for the Emotion Mirror.

This package contains the emotion gate and the collaborators it drives:
- Emotion gate: debounced state machine (analyzing / approved / denied / locked)
- Timer scheduler: cancellable deferred actions (real-time and virtual clock)
- Speech announcer: announcements queued for the browser's speech synthesis
- Presentation requests: visual effect and approval popup requests
"""
