"""Collection names (schema-in-code).

Services address documents by these names; the SQL provider maps each one
onto a mapped table.
"""

USERS = "users"
PLOTS = "plots"
VISIT_REQUESTS = "visitRequests"
VISITOR_QRS = "visitorQRs"
ACCESS_LOGS = "accessLogs"
MANAGER_TASKS = "managerTasks"
MANAGER_FEEDBACK = "managerFeedback"
LEAVE_REQUESTS = "leaveRequests"
