"""
Pipeline package.

Contains the orchestrator that runs schema retrieval, the query agent,
chart extraction and answer synthesis for one question, and the event
emitter used for progress updates.

Import from the submodules (``querypilot.pipeline.orchestrator``,
``querypilot.pipeline.events``); agents depend on the events module.
"""
