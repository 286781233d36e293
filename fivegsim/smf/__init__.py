"""Session Management Function: PDU sessions, IP pool, TEIDs and the Nsmf_PDUSession API."""