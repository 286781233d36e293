"""User Plane Function: session forwarding, N6 hand-off and the PFCP simulation API."""