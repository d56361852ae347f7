"""Built-in transactional email templates.

Placeholders use ``{{ name }}``; see ``messaging.render_template``.
"""

TEMPLATES = {
    "vendor-application-submitted": {
        "subject": "Vendor Application Received - Ageless Literature",
        "body_html": (
            "<h1>Application Received</h1><p>Hi {{user_name}},</p>"
            "<p>Thank you for applying to become a vendor at Ageless Literature.</p>"
            "<p><strong>Shop Name:</strong> {{shop_name}}</p>"
            "<p>We'll review your application and get back to you within 2-3 business days.</p>"
        ),
    },
    "vendor-application-approved": {
        "subject": "Vendor Application Approved - Ageless Literature",
        "body_html": (
            "<h1>Congratulations!</h1><p>Your vendor application has been approved.</p>"
            "<p><strong>Shop Name:</strong> {{shop_name}}</p>"
            '<p><a href="{{shop_link}}">Visit your shop</a></p>'
        ),
    },
    "vendor-application-rejected": {
        "subject": "Vendor Application - Ageless Literature",
        "body_html": (
            "<h1>Application Update</h1>"
            "<p>Unfortunately, we are unable to approve your vendor application at this time.</p>"
            "<p><strong>Reason:</strong> {{reason}}</p>"
        ),
    },
    "vendor-suspended": {
        "subject": "Account Status Update - Ageless Literature",
        "body_html": (
            "<h1>Account Suspended</h1><p>Your vendor account has been suspended.</p>"
            "<p><strong>Reason:</strong> {{reason}}</p>"
            "<p>Please contact support for more information.</p>"
        ),
    },
    "vendor-payout-completed": {
        "subject": "Payout Completed - Ageless Literature",
        "body_html": "<h1>Payout Completed</h1><p>Your payout of ${{amount}} has been successfully sent.</p>",
    },
    "payout-failed": {
        "subject": "Payout Failed - Ageless Literature",
        "body_html": (
            "<h1>Payout Issue</h1><p>Hi {{first_name}},</p>"
            "<p>Unfortunately, your payout of ${{amount}} failed.</p>"
            "<p><strong>Reason:</strong> {{reason}}</p>"
            "<p>Please contact support for assistance.</p>"
        ),
    },
    "stripe-account-active": {
        "subject": "Stripe Account Active - Ageless Literature",
        "body_html": (
            "<h1>Payment Account Active</h1><p>Hi {{first_name}},</p>"
            "<p>Your Stripe Connect account for {{shop_name}} is now active!</p>"
            "<p>You can now receive payouts for your sales.</p>"
        ),
    },
    "stripe-account-restricted": {
        "subject": "Account Verification Needed - Ageless Literature",
        "body_html": (
            "<h1>Action Required</h1><p>Hi {{first_name}},</p>"
            "<p>Your payment account for {{shop_name}} requires additional verification.</p>"
            "<p><strong>Reason:</strong> {{reason}}</p>"
            "<p>Please complete the verification process to continue receiving payouts.</p>"
        ),
    },
    "bank-payout-failed": {
        "subject": "Bank Payout Failed - Ageless Literature",
        "body_html": (
            "<h1>Bank Payout Failed</h1><p>Hi {{first_name}},</p>"
            "<p>Stripe could not deliver a payout of ${{amount}} to the bank account linked to {{shop_name}}.</p>"
            "<p><strong>Reason:</strong> {{reason}}</p>"
            "<p>Please review your bank details in the Stripe dashboard.</p>"
        ),
    },
    "vendor-withdrawal-requested": {
        "subject": "Withdrawal Request Received - Ageless Literature",
        "body_html": (
            "<h1>Withdrawal Request</h1>"
            "<p>Your withdrawal request for ${{amount}} has been received and is being processed.</p>"
        ),
    },
    "vendor-withdrawal-approved": {
        "subject": "Withdrawal Approved - Ageless Literature",
        "body_html": "<h1>Withdrawal Approved</h1><p>Your withdrawal request for ${{amount}} has been approved.</p>",
    },
    "vendor-withdrawal-completed": {
        "subject": "Withdrawal Completed - Ageless Literature",
        "body_html": "<h1>Withdrawal Complete</h1><p>Your withdrawal of ${{amount}} has been completed.</p>",
    },
    "vendor-withdrawal-rejected": {
        "subject": "Withdrawal Request - Ageless Literature",
        "body_html": (
            "<h1>Withdrawal Update</h1>"
            "<p>Your withdrawal request for ${{amount}} could not be processed.</p>"
            "<p><strong>Reason:</strong> {{reason}}</p>"
        ),
    },
    "auction_won_payment_due": {
        "subject": "Congratulations! You Won: {{auction_title}}",
        "body_html": (
            "<h1>Congratulations on Your Winning Bid!</h1><p>Hi {{user_name}},</p>"
            "<p>You have won the auction for <strong>{{auction_title}}</strong>!</p>"
            "<p><strong>Winning Bid:</strong> ${{winning_amount}}</p>"
            "<p><strong>Payment Due:</strong> {{payment_deadline}}</p>"
            '<p><a href="{{payment_link}}">Complete Payment</a></p>'
            "<p>Thank you for your purchase!</p>"
        ),
    },
    "order_confirmation_buyer": {
        "subject": "Order Confirmation - {{order_number}}",
        "body_html": (
            "<h1>Thank You for Your Order!</h1><p>Hi {{user_name}},</p>"
            "<p>Your order has been confirmed and is being processed.</p>"
            "<p><strong>Order Number:</strong> {{order_number}}</p>"
            "<p><strong>Order Total:</strong> ${{order_total}}</p>"
            "<h3>Order Items:</h3><ul>{{items_list}}</ul>"
            '<p><a href="{{order_link}}">View Order</a></p>'
        ),
    },
    "order_new_vendor": {
        "subject": "New Order - {{order_number}}",
        "body_html": (
            "<h1>You Have a New Order!</h1><p>Hi {{vendor_name}},</p>"
            "<p>You have received a new order that includes items from your shop.</p>"
            "<p><strong>Order Number:</strong> {{order_number}}</p>"
            "<h3>Your Items in This Order:</h3><ul>{{items_list}}</ul>"
            "<p><strong>Vendor Total:</strong> ${{vendor_total}}</p>"
            '<p><a href="{{order_link}}">View Order Details</a></p>'
        ),
    },
    "password-reset": {
        "subject": "Reset Your Password - Ageless Literature",
        "body_html": (
            "<h1>Password Reset</h1><p>Hi {{user_name}},</p>"
            "<p>Use the link below to choose a new password. It expires in one hour.</p>"
            '<p><a href="{{reset_link}}">Reset password</a></p>'
        ),
    },
}

GENERIC_TEMPLATE = {
    "subject": "Notification from Ageless Literature",
    "body_html": "<p>You have a new notification from Ageless Literature.</p>",
}
